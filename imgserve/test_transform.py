from typing import Optional

import pytest

from imgserve import codec, transform
from imgserve.codec import Format, ImageFormat
from imgserve.conftest import image_size
from imgserve.errors import InvalidDimensions, UnknownFormat
from imgserve.transform import Convert, Operation, Quality, Resize, TransformRequest


@pytest.mark.parametrize(
    'request_,expected', [
        (TransformRequest(), []),
        (TransformRequest(format=Format.WEBP), [Convert(Format.WEBP)]),
        (TransformRequest(quality=50), [Quality(50)]),
        (TransformRequest(width=100), [Resize(100, None)]),
        (TransformRequest(height=100), [Resize(None, 100)]),
        (
            TransformRequest(width=10, height=20, quality=30, format=Format.JPEG),
            [Convert(Format.JPEG), Quality(30), Resize(10, 20)],
        ),
        (TransformRequest(width=10, quality=30), [Quality(30), Resize(10, None)]),
    ],
    ids=['identity', 'convert', 'quality', 'width', 'height', 'all', 'quality-resize'])
def test_build_operations(request_: TransformRequest, expected: list[Operation]) -> None:
  assert transform.build_operations(request_) == expected


def test_is_identity() -> None:
  assert TransformRequest().is_identity()
  assert not TransformRequest(quality=0).is_identity()
  assert not TransformRequest(format=Format.PNG).is_identity()


def test_identity_transform(png_200x400: bytes) -> None:
  assert transform.transform(png_200x400, []) == png_200x400


def test_identity_transform_keeps_non_images() -> None:
  assert transform.transform(b'plain text', []) == b'plain text'


def test_quality_on_png_is_noop(png_200x400: bytes) -> None:
  assert transform.transform(png_200x400, [Quality(10)]) == png_200x400


def test_quality_on_jpeg(jpeg_200x400: bytes) -> None:
  out = transform.transform(jpeg_200x400, [Quality(10)])

  assert out != jpeg_200x400
  assert codec.guess_format(out) == ImageFormat.JPEG
  assert image_size(out) == (200, 400)


def test_quality_on_webp(png_200x400: bytes) -> None:
  webp = transform.transform(png_200x400, [Convert(Format.WEBP)])

  out = transform.transform(webp, [Quality(10)])

  assert out != webp
  assert codec.guess_format(out) == ImageFormat.WEBP


def test_quality_applies_to_converted_format(png_200x400: bytes) -> None:
  converted = transform.transform(png_200x400, [Convert(Format.JPEG)])

  out = transform.transform(png_200x400, [Convert(Format.JPEG), Quality(10)])

  assert codec.guess_format(out) == ImageFormat.JPEG
  assert out != converted


@pytest.mark.parametrize(
    'fmt,expected', [
        (Format.PNG, ImageFormat.PNG),
        (Format.JPEG, ImageFormat.JPEG),
        (Format.WEBP, ImageFormat.WEBP),
    ])
def test_convert(png_200x400: bytes, fmt: Format, expected: ImageFormat) -> None:
  out = transform.transform(png_200x400, [Convert(fmt)])

  assert codec.guess_format(out) == expected
  assert image_size(out) == (200, 400)


@pytest.mark.parametrize(
    'width,height,expected', [
        (100, None, (100, 400)),
        (None, 100, (200, 100)),
        (50, 60, (50, 60)),
        (400, None, (400, 400)),
    ],
    ids=['width-only', 'height-only', 'both', 'upscale'])
def test_resize(
    png_200x400: bytes,
    width: Optional[int],
    height: Optional[int],
    expected: tuple[int, int],
) -> None:
  out = transform.transform(png_200x400, [Resize(width, height)])

  assert codec.guess_format(out) == ImageFormat.PNG
  assert image_size(out) == expected


def test_resize_keeps_jpeg(jpeg_200x400: bytes) -> None:
  out = transform.transform(jpeg_200x400, [Resize(100, None)])

  assert codec.guess_format(out) == ImageFormat.JPEG
  assert image_size(out) == (100, 400)


def test_resize_without_dimensions(png_200x400: bytes) -> None:
  with pytest.raises(InvalidDimensions):
    transform.transform(png_200x400, [Resize(None, None)])


def test_full_pipeline(png_200x400: bytes) -> None:
  request = TransformRequest(width=100, quality=50, format=Format.WEBP)

  out = transform.transform(png_200x400, transform.build_operations(request))

  assert codec.guess_format(out) == ImageFormat.WEBP
  assert image_size(out) == (100, 400)


def test_transform_rejects_non_images() -> None:
  with pytest.raises(UnknownFormat):
    transform.transform(b'plain text', [Convert(Format.PNG)])
