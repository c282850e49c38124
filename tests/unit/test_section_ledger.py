"""
Tests for the ledger that moves section image pointers.
"""
from __future__ import annotations

import uuid
from unittest.mock import Mock

import pytest

from src.application.services.section_ledger import SectionLedger, is_persisted_section_id
from src.domain.exceptions import ConcurrentEditError, InvalidRequestError, NotFoundError
from src.infrastructure.database.repositories.history_repository import HistoryRepository
from src.infrastructure.database.repositories.section_repository import SectionRepository


@pytest.fixture
def ledger():
    return SectionLedger(SectionRepository(None), HistoryRepository(None))


def _new_section(ledger, image_id="img_a"):
    return ledger.section_repo.create(page_id=f"page-{uuid.uuid4().hex}", order=0, image_id=image_id)


def test_persisted_ids():
    assert is_persisted_section_id("12")
    assert not is_persisted_section_id("temp-3")
    assert not is_persisted_section_id("")


def test_substitute_logs_previous_pointer(ledger):
    section = _new_section(ledger, "img_a")
    entry = ledger.substitute(section.id, "img_b", "crop", user_id="u1")

    assert entry.previous_image_id == "img_a"
    assert entry.new_image_id == "img_b"
    assert ledger.get_section(section.id).image_id == "img_b"


def test_chain_integrity_over_many_substitutions(ledger):
    section = _new_section(ledger, "img_0")
    for i in range(1, 6):
        ledger.substitute(section.id, f"img_{i}", "manual", user_id="u1")

    entries = ledger.history_repo.list_for_section(section.id, "img_5", limit=10)
    ordered = list(reversed(entries))  # oldest first
    assert ordered[0].previous_image_id == "img_0"
    for earlier, later in zip(ordered, ordered[1:]):
        assert later.previous_image_id == earlier.new_image_id
    assert ordered[-1].new_image_id == ledger.get_section(section.id).image_id


def test_revert_target_is_reachable_and_reversible(ledger):
    section = _new_section(ledger, "img_a")
    ledger.substitute(section.id, "img_b", "crop", user_id="u1")
    revert = ledger.substitute(section.id, "img_a", "revert", user_id="u1")

    assert revert.previous_image_id == "img_b"
    entries = ledger.history_repo.list_for_section(section.id, "img_a", limit=10)
    assert "img_b" in {e.new_image_id for e in entries}


def test_section_without_image_logs_null_previous(ledger):
    section = _new_section(ledger, None)
    entry = ledger.substitute(section.id, "img_x", "crop", user_id="u1")
    assert entry.previous_image_id is None
    assert ledger.get_section(section.id).image_id == "img_x"


def test_concurrent_move_is_rejected():
    section_repo = Mock()
    section_repo.get.return_value = Mock(id="7", image_id="img_a")
    section_repo.compare_and_set_image.return_value = False
    history_repo = Mock()
    history_repo.create.return_value = Mock(id="hist_x")
    ledger = SectionLedger(section_repo, history_repo)

    with pytest.raises(ConcurrentEditError) as exc_info:
        ledger.substitute("7", "img_b", "crop", user_id="u1")
    assert exc_info.value.retryable
    section_repo.compare_and_set_image.assert_called_once_with("7", "img_a", "img_b")
    history_repo.discard.assert_called_once_with("hist_x")


class RacingSectionRepository(SectionRepository):
    """Another writer moves the pointer right after the ledger reads it."""

    def __init__(self, other_image_id):
        super().__init__(None)
        self.other_image_id = other_image_id

    def get(self, section_id):
        section = super().get(section_id)
        if section is not None and section.image_id != self.other_image_id:
            assert super().compare_and_set_image(section_id, section.image_id, self.other_image_id)
        return section


def test_lost_race_leaves_no_history_entry():
    section_repo = RacingSectionRepository("img_other_writer")
    ledger = SectionLedger(section_repo, HistoryRepository(None))
    section = section_repo.create(page_id=f"page-{uuid.uuid4().hex}", order=0, image_id="img_a")

    with pytest.raises(ConcurrentEditError):
        ledger.substitute(section.id, "img_b", "crop", user_id="u1")

    assert SectionRepository(None).get(section.id).image_id == "img_other_writer"
    entries = ledger.history_repo.list_for_section(section.id, "img_other_writer", limit=10)
    assert [(e.previous_image_id, e.new_image_id) for e in entries] == []


def test_record_does_not_move_pointer(ledger):
    section = _new_section(ledger, "img_a")
    entry = ledger.record(section.id, "img_a", "img_z", "manual", user_id="u1")
    assert entry.new_image_id == "img_z"
    assert ledger.get_section(section.id).image_id == "img_a"


def test_unknown_and_unsaved_sections(ledger):
    with pytest.raises(NotFoundError):
        ledger.get_section("999999")
    with pytest.raises(InvalidRequestError):
        ledger.substitute("temp-3", "img_b", "crop", user_id="u1")
