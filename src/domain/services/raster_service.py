from __future__ import annotations

import math
from io import BytesIO
from typing import Iterable

import numpy as np
from PIL import Image, UnidentifiedImageError

from src.domain.exceptions import RasterError

FIT_MODES = ("cover", "contain", "fill")
ANCHORS = ("top", "center", "bottom")


class RasterService:
    """NumPy/Pillow raster primitives. Rasters are float32 arrays normalized to [0, 1].

    Channel convention:
    - Grayscale: (H, W)
    - RGB: (H, W, 3)
    - RGBA: (H, W, 4), only when the source carries transparency

    Row 0 is the top edge of the image.
    """

    # --------- codec ---------
    @staticmethod
    def decode(data: bytes) -> np.ndarray:
        try:
            img = Image.open(BytesIO(data))
            img = img.convert("RGBA" if RasterService._has_alpha(img) else "RGB")
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise RasterError(f"Cannot decode image: {exc}") from exc
        return np.asarray(img).astype(np.float32) / 255.0

    @staticmethod
    def read_size(data: bytes) -> tuple[int, int]:
        """(width, height) from the image header without decoding pixels."""
        try:
            with Image.open(BytesIO(data)) as img:
                return img.size
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise RasterError(f"Cannot read image header: {exc}") from exc

    @staticmethod
    def content_type(data: bytes) -> str:
        """MIME type named by the image header."""
        try:
            with Image.open(BytesIO(data)) as img:
                fmt = img.format
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise RasterError(f"Cannot read image header: {exc}") from exc
        return Image.MIME.get(fmt or "", "image/png")

    @staticmethod
    def encode(matrix: np.ndarray, ext: str = "png") -> tuple[bytes, str]:
        """PNG keeps an alpha channel; JPEG drops it."""
        fmt = "PNG" if ext.lower() == "png" else "JPEG"
        arr = np.clip(matrix, 0.0, 1.0).astype(np.float32)
        if arr.ndim == 2:
            mode = "L"
            pil_arr = (arr * 255.0).round().astype("uint8")
        elif arr.shape[2] == 4 and fmt == "PNG":
            mode = "RGBA"
            pil_arr = (arr * 255.0).round().astype("uint8")
        else:
            mode = "RGB"
            pil_arr = (arr[..., :3] * 255.0).round().astype("uint8")
        img = Image.fromarray(pil_arr, mode=mode)
        buf = BytesIO()
        img.save(buf, format=fmt, quality=95)
        content_type = f"image/{'png' if fmt == 'PNG' else 'jpeg'}"
        return buf.getvalue(), content_type

    # --------- metadata ---------
    @staticmethod
    def size(matrix: np.ndarray) -> tuple[int, int]:
        h, w = matrix.shape[:2]
        return int(w), int(h)

    @staticmethod
    def channels(matrix: np.ndarray) -> int:
        return 1 if matrix.ndim == 2 else int(matrix.shape[2])

    # --------- extraction ---------
    # Region [top:top+height, left:left+width]; must lie fully inside the raster
    @staticmethod
    def extract_region(
        matrix: np.ndarray, left: int, top: int, width: int, height: int
    ) -> np.ndarray:
        h, w = matrix.shape[:2]
        if width <= 0 or height <= 0:
            raise RasterError(f"Empty region {width}x{height}")
        if left < 0 or top < 0 or left + width > w or top + height > h:
            raise RasterError(
                f"Region ({left},{top},{width}x{height}) outside image {w}x{h}"
            )
        return matrix.astype(np.float32)[top : top + height, left : left + width].copy()

    @staticmethod
    def top_rows(matrix: np.ndarray, rows: int) -> np.ndarray:
        w = matrix.shape[1]
        return RasterService.extract_region(matrix, 0, 0, w, rows)

    @staticmethod
    def bottom_rows(matrix: np.ndarray, rows: int) -> np.ndarray:
        h, w = matrix.shape[:2]
        return RasterService.extract_region(matrix, 0, h - rows, w, rows)

    @staticmethod
    def drop_top_rows(matrix: np.ndarray, rows: int) -> np.ndarray:
        if rows <= 0:
            return matrix.astype(np.float32).copy()
        h, w = matrix.shape[:2]
        return RasterService.extract_region(matrix, 0, rows, w, h - rows)

    @staticmethod
    def drop_bottom_rows(matrix: np.ndarray, rows: int) -> np.ndarray:
        if rows <= 0:
            return matrix.astype(np.float32).copy()
        h, w = matrix.shape[:2]
        return RasterService.extract_region(matrix, 0, 0, w, h - rows)

    # --------- resize ---------
    @staticmethod
    def resize(matrix: np.ndarray, width: int, height: int) -> np.ndarray:
        if width <= 0 or height <= 0:
            raise RasterError(f"Invalid target size {width}x{height}")
        w, h = RasterService.size(matrix)
        if (w, h) == (width, height):
            return matrix.astype(np.float32)
        arr = (np.clip(matrix, 0.0, 1.0) * 255.0).round().astype("uint8")
        if arr.ndim == 2:
            mode = "L"
        elif arr.shape[2] == 4:
            mode = "RGBA"
        else:
            mode = "RGB"
            arr = np.ascontiguousarray(arr[..., :3])
        img = Image.fromarray(arr, mode=mode)
        resized = img.resize((width, height), Image.Resampling.LANCZOS)
        return np.asarray(resized).astype(np.float32) / 255.0

    @staticmethod
    def resize_fit(
        matrix: np.ndarray,
        width: int,
        height: int,
        fit: str = "cover",
        anchor: str = "center",
    ) -> np.ndarray:
        """Force a raster to exactly (width, height).

        - fill: stretch
        - cover: scale until the box is covered, crop overflow; the `anchor` side
          is kept intact and the opposite side absorbs the crop
        - contain: scale until it fits, pad with white; `anchor` positions it
        """
        if fit not in FIT_MODES:
            raise ValueError(f"Unsupported fit: {fit}")
        if anchor not in ANCHORS:
            raise ValueError(f"Unsupported anchor: {anchor}")
        if width <= 0 or height <= 0:
            raise RasterError(f"Invalid target size {width}x{height}")
        src_w, src_h = RasterService.size(matrix)
        if src_w <= 0 or src_h <= 0:
            raise RasterError("Cannot resize an empty image")
        if fit == "fill" or (src_w, src_h) == (width, height):
            return RasterService.resize(matrix, width, height)

        if fit == "cover":
            scale = max(width / src_w, height / src_h)
            new_w = max(width, int(math.ceil(src_w * scale)))
            new_h = max(height, int(math.ceil(src_h * scale)))
            scaled = RasterService.resize(matrix, new_w, new_h)
            left = (new_w - width) // 2
            top = RasterService._anchor_offset(new_h - height, anchor)
            return RasterService.extract_region(scaled, left, top, width, height)

        scale = min(width / src_w, height / src_h)
        new_w = min(width, max(1, int(round(src_w * scale))))
        new_h = min(height, max(1, int(round(src_h * scale))))
        scaled = RasterService.resize(matrix, new_w, new_h)
        x = (width - new_w) // 2
        y = RasterService._anchor_offset(height - new_h, anchor)
        return RasterService.composite_layers(width, height, [(scaled, x, y)])

    # --------- compositing ---------
    @staticmethod
    def composite_layers(
        width: int,
        height: int,
        layers: Iterable[tuple[np.ndarray, int, int]],
        background: float = 1.0,
    ) -> np.ndarray:
        """Paint `(raster, x, y)` layers in order onto a new canvas.

        The canvas is RGBA when any layer has an alpha channel, RGB otherwise;
        the background is opaque. Later layers overwrite earlier ones; parts
        falling outside the canvas are clipped.
        """
        if width <= 0 or height <= 0:
            raise RasterError(f"Invalid canvas size {width}x{height}")
        layers = list(layers)
        channels = 4 if any(RasterService.channels(raster) == 4 for raster, _, _ in layers) else 3
        canvas = np.full((height, width, channels), float(background), dtype=np.float32)
        if channels == 4:
            canvas[..., 3] = 1.0
        for raster, x, y in layers:
            layer = RasterService._ensure_channels(raster, channels)
            lh, lw = layer.shape[:2]
            x_src = max(0, -x)
            y_src = max(0, -y)
            x_dst = max(0, x)
            y_dst = max(0, y)
            x_len = min(lw - x_src, width - x_dst)
            y_len = min(lh - y_src, height - y_dst)
            if x_len <= 0 or y_len <= 0:
                continue
            canvas[y_dst : y_dst + y_len, x_dst : x_dst + x_len, :] = layer[
                y_src : y_src + y_len, x_src : x_src + x_len, :
            ]
        return canvas

    # --------- helpers ---------
    @staticmethod
    def _anchor_offset(slack: int, anchor: str) -> int:
        if anchor == "top":
            return 0
        if anchor == "bottom":
            return slack
        return slack // 2

    @staticmethod
    def _has_alpha(img: Image.Image) -> bool:
        if img.mode in ("RGBA", "LA", "PA"):
            return True
        return img.mode == "P" and "transparency" in img.info

    @staticmethod
    def _ensure_channels(matrix: np.ndarray, channels: int) -> np.ndarray:
        """RGB, or RGBA with an opaque alpha added where the raster has none."""
        mat = matrix.astype(np.float32)
        if mat.ndim == 2:
            mat = mat[..., None]
        if mat.shape[2] == 1:
            mat = np.repeat(mat, 3, axis=2)
        rgb = mat[..., :3]
        if channels == 3:
            return rgb
        if mat.shape[2] == 4:
            return mat
        alpha = np.ones(rgb.shape[:2] + (1,), dtype=np.float32)
        return np.concatenate([rgb, alpha], axis=2)
