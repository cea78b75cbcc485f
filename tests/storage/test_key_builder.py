import re

import pytest

from infrastructure.external.storage.utils import (
    build_key,
    calculate_content_hash,
    generate_filename,
    guess_content_type,
    normalize_key,
    relocate_key,
    thumbnail_key_for,
)


@pytest.mark.parametrize(
    "base_path, subfolder, filename, use_full_path, expected",
    [
        ("uploads", "2025", "a.jpg", False, "uploads/2025/a.jpg"),
        ("uploads", None, "a.jpg", False, "uploads/a.jpg"),
        ("uploads/", "/2025/", "a.jpg", False, "uploads/2025/a.jpg"),
        ("uploads", "albums/trip", "a.jpg", True, "albums/trip/a.jpg"),
        (None, None, "a.jpg", False, "a.jpg"),
        ("", "x", "a.jpg", False, "x/a.jpg"),
    ],
)
def test_build_key(base_path, subfolder, filename, use_full_path, expected):
    assert build_key(base_path, subfolder, filename, use_full_path) == expected


def test_build_key_never_has_leading_or_double_slash():
    key = build_key("/root//", "//nested///dir/", "f.png")
    assert not key.startswith("/")
    assert "//" not in key


def test_normalize_key():
    assert normalize_key("//a///b/c.jpg") == "a/b/c.jpg"


def test_relocate_key_keeps_file_name():
    assert relocate_key("uploads/2024/a.jpg", "archive/2025") == "archive/2025/a.jpg"
    assert relocate_key("uploads/a.jpg", "") == "a.jpg"
    assert relocate_key("uploads/a.jpg", "/archive/") == "archive/a.jpg"


def test_thumbnail_key_for():
    assert thumbnail_key_for("uploads/2025/a.jpg") == "uploads/2025/thumb-a.jpg"
    assert thumbnail_key_for("a.jpg") == "thumb-a.jpg"
    assert thumbnail_key_for("x/a.jpg", prefix="t_") == "x/t_a.jpg"


def test_generate_filename_keeps_extension_and_is_random():
    first = generate_filename("Holiday Photo.JPG")
    second = generate_filename("Holiday Photo.JPG")
    assert re.fullmatch(r"[0-9a-f]{32}\.JPG", first)
    assert first != second
    assert re.fullmatch(r"[0-9a-f]{32}", generate_filename("noext"))


def test_guess_content_type():
    assert guess_content_type("a.png") == "image/png"
    assert guess_content_type("a.unknownext") == "application/octet-stream"


def test_calculate_content_hash_is_sha256():
    assert calculate_content_hash(b"") == (
        "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    )
