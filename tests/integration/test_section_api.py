import base64
import io
import uuid

import numpy as np
import pytest
from PIL import Image


def make_png_bytes(w=4, h=4, color=(128, 64, 32)) -> bytes:
    arr = np.zeros((h, w, 3), dtype=np.uint8)
    arr[:, :] = color
    img = Image.fromarray(arr, mode="RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def new_page() -> str:
    return f"page-{uuid.uuid4().hex[:8]}"


def history(client, auth_header, section_id):
    r = client.get(f"/sections/{section_id}/history", headers=auth_header)
    assert r.status_code == 200, r.text
    return r.json()


def test_root_and_health(client):
    assert client.get("/").json()["service"] == "stackseam-backend"
    assert client.get("/health").json() == {"status": "healthy"}


def test_requires_bearer_token(client):
    r = client.get("/sections/1/history")
    assert r.status_code == 401


def test_boundary_adjust_moves_seam_both_ways(client, auth_header, seed_section):
    page = new_page()
    upper, upper_img = seed_section(page, 0, 800, 1200)
    lower, lower_img = seed_section(page, 1, 800, 900, color=(30, 30, 200))

    body = {"upper_section_id": upper.id, "lower_section_id": lower.id, "offset_pixels": 50}
    r = client.post("/sections/boundary-adjust", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["actual_offset"] == 67
    assert data["scale_factor"] == pytest.approx(4 / 3, rel=1e-4)
    assert data["upper_image"]["height"] == 1200
    assert data["lower_image"]["height"] == 833

    entries = history(client, auth_header, lower.id)["history"]
    assert entries[0]["action_type"] == "boundary-adjust"
    assert entries[0]["previous_image_id"] == lower_img.id
    assert entries[0]["new_image_id"] == data["lower_image"]["id"]

    body["offset_pixels"] = -50
    r = client.post("/sections/boundary-adjust", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["actual_offset"] == -67
    assert data["upper_image"]["height"] == 1133
    assert data["lower_image"]["height"] == 833
    assert len(history(client, auth_header, upper.id)["history"]) == 2


def test_boundary_adjust_with_custom_display_width(client, auth_header, seed_section):
    page = new_page()
    upper, _ = seed_section(page, 0, 1200, 600)
    lower, _ = seed_section(page, 1, 1200, 600)
    body = {
        "upper_section_id": upper.id,
        "lower_section_id": lower.id,
        "offset_pixels": 100,
        "display_width": 1200,
    }
    r = client.post("/sections/boundary-adjust", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    assert r.json()["lower_image"]["height"] == 500


def test_boundary_adjust_unknown_section(client, auth_header, seed_section):
    upper, _ = seed_section(new_page(), 0, 200, 200)
    body = {"upper_section_id": upper.id, "lower_section_id": "987654", "offset_pixels": 10}
    r = client.post("/sections/boundary-adjust", headers=auth_header, json=body)
    assert r.status_code == 404
    assert r.json()["detail"]["error"] == "not_found"


def test_extend_bottom(client, auth_header, seed_section, outpainter):
    section, original = seed_section(new_page(), 0, 400, 400)
    outpainter.size = (400, 200)
    body = {"direction": "bottom", "bottom_amount": 200, "prompt": "continue the footer"}

    r = client.post(f"/sections/{section.id}/restore", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    data = r.json()
    assert (data["new_width"], data["new_height"]) == (400, 600)
    assert (data["added_top"], data["added_bottom"]) == (0, 200)
    assert data["new_image_url"].startswith("/local-storage/")
    assert len(outpainter.calls) == 1

    result = history(client, auth_header, section.id)
    assert result["current_image_id"] == data["new_image_id"]
    entry = result["history"][0]
    assert entry["action_type"] == "restore"
    assert entry["prompt"] == "continue the footer"
    assert entry["previous_image"]["id"] == original.id
    assert entry["new_image"]["height"] == 600


def test_extend_fails_whole_when_one_edge_fails(client, auth_header, seed_section, outpainter):
    section, original = seed_section(new_page(), 0, 300, 300)
    outpainter.fail_on = {1}
    body = {"direction": "both", "top_amount": 40, "bottom_amount": 40, "prompt": "more"}

    r = client.post(f"/sections/{section.id}/restore", headers=auth_header, json=body)
    assert r.status_code == 502
    detail = r.json()["detail"]
    assert detail["error"] == "model_unavailable"
    assert detail["retryable"] is True
    assert len(outpainter.calls) == 2
    assert history(client, auth_header, section.id)["current_image_id"] == original.id


def test_extend_rejects_tiny_amount(client, auth_header, seed_section, outpainter):
    section, _ = seed_section(new_page(), 0, 300, 300)
    body = {"direction": "top", "top_amount": 5, "bottom_amount": 300, "prompt": "x"}
    r = client.post(f"/sections/{section.id}/restore", headers=auth_header, json=body)
    assert r.status_code == 400
    assert outpainter.calls == []


def test_generate_new_section(client, auth_header, seed_section, outpainter):
    _, prev_img = seed_section(new_page(), 0, 750, 400)
    outpainter.size = (1024, 1024)
    body = {
        "prompt": "testimonials",
        "prev_image_url": f"/local-storage/{prev_img.path}",
        "next_image_url": "/local-storage/does/not/exist.png",
    }
    r = client.post("/sections/generate", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    data = r.json()
    assert (data["width"], data["height"]) == (750, 400)
    assert data["media_id"]
    # the missing neighbor is skipped
    assert len(outpainter.calls[0]["context_images"]) == 1


def test_generate_validates_size(client, auth_header):
    r = client.post("/sections/generate", headers=auth_header, json={"prompt": "x", "width": 5000})
    assert r.status_code == 422


def test_crop_unsaved_section_only_uploads(client, auth_header):
    png = base64.b64encode(make_png_bytes(8, 6)).decode()
    body = {
        "section_id": "temp-3",
        "cropped_image": f"data:image/png;base64,{png}",
        "crop_metadata": {"start_y": 0, "end_y": 6, "action": "split"},
    }
    r = client.post("/sections/crop", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    image = r.json()["image"]
    assert image["id"] is None
    assert image["url"].startswith("/local-storage/")


def test_crop_revert_and_log(client, auth_header, seed_section):
    page = new_page()
    seed_section(page, 0, 100, 300, import_batch_id=f"batch-{page}", segment_index=0)
    section, original = seed_section(page, 1, 100, 300, import_batch_id=f"batch-{page}", segment_index=1)

    png = base64.b64encode(make_png_bytes(100, 200)).decode()
    body = {
        "section_id": section.id,
        "cropped_image": png,
        "crop_metadata": {"start_y": 50, "end_y": 250, "action": "crop"},
        "page_id": page,
    }
    r = client.post("/sections/crop", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    cropped = r.json()["image"]
    assert (cropped["width"], cropped["height"]) == (100, 200)

    result = history(client, auth_header, section.id)
    assert result["current_image_id"] == cropped["id"]
    assert result["section_order"] == 1
    assert [img["id"] for img in result["original_images"]] == [original.id]

    r = client.post(f"/sections/{section.id}/history", headers=auth_header, json={"image_id": original.id})
    assert r.status_code == 200, r.text
    reverted = r.json()
    assert reverted["previous_image_id"] == cropped["id"]
    assert reverted["new_image_id"] == original.id

    entries = history(client, auth_header, section.id)["history"]
    assert [e["action_type"] for e in entries[:2]] == ["revert", "crop"]

    log = {"previous_image_id": original.id, "new_image_id": cropped["id"]}
    r = client.post(f"/sections/{section.id}/history/log", headers=auth_header, json=log)
    assert r.status_code == 200, r.text
    assert r.json()["success"] is True
    result = history(client, auth_header, section.id)
    assert result["current_image_id"] == original.id
    assert result["history"][0]["action_type"] == "manual"


def test_revert_to_unknown_image(client, auth_header, seed_section):
    section, _ = seed_section(new_page(), 0, 100, 200)
    r = client.post(f"/sections/{section.id}/history", headers=auth_header, json={"image_id": "img_missing"})
    assert r.status_code == 404


def test_history_of_unsaved_section_is_invalid(client, auth_header):
    r = client.get("/sections/temp-1/history", headers=auth_header)
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "invalid_request"


def test_boundary_design_inserts_bridge(client, auth_header, seed_section, outpainter):
    page = new_page()
    upper, _ = seed_section(page, 0, 400, 400)
    lower, _ = seed_section(page, 1, 400, 400)
    after, _ = seed_section(page, 2, 400, 400)
    outpainter.size = (512, 256)

    body = {
        "upper_section_id": upper.id,
        "lower_section_id": lower.id,
        "upper_cut": 50,
        "lower_cut": 30,
    }
    r = client.post("/sections/boundary-design", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["upper_image"]["height"] == 350
    assert data["lower_image"]["height"] == 370
    assert (data["boundary_image"]["width"], data["boundary_image"]["height"]) == (400, 80)
    assert data["boundary_section_order"] == 1

    assert history(client, auth_header, lower.id)["section_order"] == 2
    assert history(client, auth_header, after.id)["section_order"] == 3
    assert history(client, auth_header, upper.id)["history"][0]["action_type"] == "boundary-design"

def test_boundary_design_batch_keeps_going_after_a_failure(client, auth_header, seed_section, outpainter):
    page = new_page()
    first, _ = seed_section(page, 0, 400, 400)
    middle, _ = seed_section(page, 1, 400, 400)
    last, _ = seed_section(page, 2, 400, 400)
    outpainter.fail_on = {1}

    body = {
        "boundaries": [
            {"upper_section_id": first.id, "lower_section_id": middle.id, "upper_cut": 40, "lower_cut": 40},
            {"upper_section_id": middle.id, "lower_section_id": last.id, "upper_cut": 20, "lower_cut": 20},
        ]
    }
    r = client.post("/sections/boundary-design/batch", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["total"] == 2
    assert [f["index"] for f in data["failures"]] == [0]
    assert data["failures"][0]["error"] == "model_unavailable"
    assert [item["index"] for item in data["results"]] == [1]
    assert data["results"][0]["boundary_image"]["height"] == 40
    assert history(client, auth_header, first.id)["history"] == []


def test_boundary_design_batch_size_is_limited(client, auth_header):
    boundary = {"upper_section_id": "1", "lower_section_id": "2", "upper_cut": 10, "lower_cut": 10}
    r = client.post("/sections/boundary-design/batch", headers=auth_header, json={"boundaries": [boundary] * 21})
    assert r.status_code == 422


def test_extend_sends_reference_with_its_content_type(client, auth_header, seed_section, outpainter):
    section, _ = seed_section(new_page(), 0, 300, 300)
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (1, 2, 3)).save(buf, format="JPEG")
    reference = base64.b64encode(buf.getvalue()).decode()
    body = {
        "direction": "top",
        "top_amount": 40,
        "prompt": "sky",
        "reference_image": f"data:image/jpeg;base64,{reference}",
    }

    r = client.post(f"/sections/{section.id}/restore", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    context = outpainter.calls[0]["context_images"]
    assert [image.mime_type for image in context] == ["image/png", "image/jpeg"]


def test_regenerate_middle_section_follows_first_section(client, auth_header, seed_section, outpainter):
    page = new_page()
    seed_section(page, 0, 400, 300, color=(0, 0, 255))
    middle, original = seed_section(page, 1, 400, 300)
    seed_section(page, 2, 400, 300)
    outpainter.size = (800, 800)

    body = {"mode": "light", "style": "luxury", "custom_prompt": "gold accents"}
    r = client.post(f"/sections/{middle.id}/regenerate", headers=auth_header, json=body)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["previous_image_id"] == original.id
    assert (data["width"], data["height"]) == (400, 300)

    call = outpainter.calls[0]
    assert len(call["context_images"]) == 2  # first section as reference, then the target
    assert call["temperature"] == pytest.approx(0.1)
    assert "section above" in call["instruction"]
    assert "section below" in call["instruction"]
    assert "gold accents" in call["instruction"]

    result = history(client, auth_header, middle.id)
    assert result["current_image_id"] == data["new_image_id"]
    entry = result["history"][0]
    assert entry["action_type"] == "regenerate-light"
    assert entry["prompt"] == "gold accents"
    assert entry["new_image"]["source_type"] == "regenerate-light"


def test_regenerate_first_section_heavy(client, auth_header, seed_section, outpainter):
    page = new_page()
    first, _ = seed_section(page, 0, 400, 300)
    seed_section(page, 1, 400, 300)

    r = client.post(f"/sections/{first.id}/regenerate", headers=auth_header, json={"mode": "heavy"})
    assert r.status_code == 200, r.text
    call = outpainter.calls[0]
    assert len(call["context_images"]) == 1
    assert call["temperature"] == pytest.approx(0.35)
    assert "header / hero section" in call["instruction"]
    assert history(client, auth_header, first.id)["history"][0]["action_type"] == "regenerate-heavy"


def test_regenerate_model_failure_keeps_current_image(client, auth_header, seed_section, outpainter):
    section, original = seed_section(new_page(), 0, 400, 300)
    outpainter.fail_on = {1}

    r = client.post(f"/sections/{section.id}/regenerate", headers=auth_header, json={})
    assert r.status_code == 502
    result = history(client, auth_header, section.id)
    assert result["current_image_id"] == original.id
    assert result["history"] == []


def test_log_regenerate_action(client, auth_header, seed_section):
    section, original = seed_section(new_page(), 0, 100, 100)
    log = {"previous_image_id": None, "new_image_id": original.id, "action_type": "regenerate-heavy"}
    r = client.post(f"/sections/{section.id}/history/log", headers=auth_header, json=log)
    assert r.status_code == 200, r.text
