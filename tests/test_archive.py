import io
import zipfile

import pytest

from conftest import corrupt_first_entry, deflated_zip, mark_encrypted, png_bytes, zip_bytes
from material_archive import build_bundle, unpack
from material_decoder import ImageDecodeError


def test_unpack_yields_every_entry_in_order():
    data = zip_bytes([
        ("normal_map.png", b"n"),
        ("readme.txt", b"hello"),
        ("base_texture.png", b"b"),
    ])

    assert list(unpack(data)) == [
        ("normal_map.png", b"n"),
        ("readme.txt", b"hello"),
        ("base_texture.png", b"b"),
    ]


def test_unpack_reads_compressed_entries():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("roughness_map.png", b"r" * 10000)

    assert list(unpack(buf.getvalue())) == [("roughness_map.png", b"r" * 10000)]


def test_unpack_skips_directories():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("maps/", b"")
        zf.writestr("maps/extra.png", b"x")

    assert [name for name, _ in unpack(buf.getvalue())] == ["maps/extra.png"]


def test_unpack_is_lazy_and_not_restartable():
    entries = unpack(zip_bytes([("a", b"1"), ("b", b"2")]))

    assert next(entries) == ("a", b"1")
    assert list(entries) == [("b", b"2")]
    assert list(entries) == []


def test_unpack_rejects_non_zip():
    with pytest.raises(zipfile.BadZipFile):
        next(unpack(b"this is not a zip"))


def test_bundle_with_only_roughness():
    data = zip_bytes([("roughness_map.png", png_bytes(8, 8))])

    bundle = build_bundle(unpack(data))

    assert bundle.base_texture is None
    assert bundle.normal_map is None
    assert (bundle.roughness_map.width, bundle.roughness_map.height) == (8, 8)
    assert len(bundle) == 1


def test_bundle_any_order_and_unknown_names_ignored():
    data = zip_bytes([
        ("roughness_map.png", png_bytes(2, 2)),
        ("metadata.json", b"{}"),
        ("normal_map.png", png_bytes(3, 3)),
        ("Base_Texture.png", png_bytes(9, 9)),
        ("base_texture.png", png_bytes(4, 4)),
    ])

    bundle = build_bundle(unpack(data))

    assert bundle.base_texture.width == 4
    assert bundle.normal_map.width == 3
    assert bundle.roughness_map.width == 2


def test_bundle_unknown_entries_are_not_decoded():
    decoded = []

    def decoder(data):
        decoded.append(data)
        raise AssertionError("should not decode unknown entries")

    bundle = build_bundle([("notes.txt", b"x")], decoder=decoder)

    assert decoded == []
    assert len(bundle) == 0


def test_bundle_first_duplicate_wins():
    data = zip_bytes([
        ("normal_map.png", png_bytes(2, 2)),
        ("normal_map.png", png_bytes(6, 6)),
    ])

    bundle = build_bundle(unpack(data))

    assert bundle.normal_map.width == 2


def test_bundle_undecodable_known_entry():
    data = zip_bytes([("base_texture.png", b"corrupt")])

    with pytest.raises(ImageDecodeError, match="base_texture.png"):
        build_bundle(unpack(data))


def test_unpack_corrupt_deflate_stream():
    data = corrupt_first_entry(deflated_zip("base_texture.png", b"texture" * 500))

    with pytest.raises(zipfile.BadZipFile, match="base_texture.png"):
        list(unpack(data))


def test_unpack_encrypted_entry():
    data = mark_encrypted(zip_bytes([("normal_map.png", b"plain bytes")]))

    with pytest.raises(zipfile.BadZipFile, match="normal_map.png"):
        list(unpack(data))


def test_unpack_unsupported_compression():
    data = zip_bytes([("roughness_map.png", b"r" * 64)])
    buf = bytearray(data)
    # compression method 99 (AES) in both headers
    for signature, method_offset in ((b"PK\x03\x04", 8), (b"PK\x01\x02", 10)):
        pos = buf.find(signature)
        buf[pos + method_offset:pos + method_offset + 2] = (99).to_bytes(2, "little")

    with pytest.raises(zipfile.BadZipFile, match="roughness_map.png"):
        list(unpack(bytes(buf)))
