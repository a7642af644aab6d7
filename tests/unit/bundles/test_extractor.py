from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from bundleos.core.bundles.exceptions import ExtractionError, ValidationError
from bundleos.core.bundles.extractor import ArchiveExtractor
from bundleos.core.bundles.models import UploadedBundle


def _upload(path: Path) -> UploadedBundle:
    return UploadedBundle.from_path(path)


def test_extract_writes_members_into_fresh_scratch_dir(tmp_path: Path, build_zip) -> None:
    archive = build_zip(tmp_path / "gallery.zip", {"module.json": {"name": "Gallery"}, "src/app.py": "x = 1\n"})
    extractor = ArchiveExtractor(tmp_path / "scratch")

    scratch = extractor.extract(_upload(archive))

    assert scratch.parent == tmp_path / "scratch"
    assert scratch.name.startswith("bundle_")
    assert (scratch / "module.json").is_file()
    assert (scratch / "src" / "app.py").read_text() == "x = 1\n"


def test_concurrent_uploads_get_distinct_scratch_dirs(tmp_path: Path, build_zip) -> None:
    archive = build_zip(tmp_path / "a.zip", {"module.json": "{}"})
    extractor = ArchiveExtractor(tmp_path / "scratch")

    first = extractor.extract(_upload(archive))
    second = extractor.extract(_upload(archive))

    assert first != second


def test_wrong_extension_rejected_before_any_write(tmp_path: Path, build_zip) -> None:
    archive = build_zip(tmp_path / "bundle.tar", {"module.json": "{}"})
    extractor = ArchiveExtractor(tmp_path / "scratch")

    with pytest.raises(ValidationError, match="ZIP"):
        extractor.extract(_upload(archive))

    assert not (tmp_path / "scratch").exists()


def test_oversized_upload_rejected_before_any_write(tmp_path: Path, build_zip) -> None:
    archive = build_zip(tmp_path / "big.zip", {"module.json": "x" * 4096})
    extractor = ArchiveExtractor(tmp_path / "scratch", max_upload_size=100)

    with pytest.raises(ValidationError, match="exceeds maximum"):
        extractor.extract(_upload(archive))

    assert not (tmp_path / "scratch").exists()


def test_upload_size_is_taken_from_the_upload(tmp_path: Path, build_zip) -> None:
    archive = build_zip(tmp_path / "small.zip", {"module.json": "{}"})
    extractor = ArchiveExtractor(tmp_path / "scratch", max_upload_size=10240 * 1024)
    upload = UploadedBundle(filename="small.zip", size=10240 * 1024 + 1, path=archive)

    with pytest.raises(ValidationError):
        extractor.validate_upload(upload)


def test_extension_check_is_case_insensitive(tmp_path: Path, build_zip) -> None:
    archive = build_zip(tmp_path / "BUNDLE.ZIP", {"module.json": "{}"})
    extractor = ArchiveExtractor(tmp_path / "scratch")

    assert (extractor.extract(_upload(archive)) / "module.json").exists()


def test_corrupt_archive_raises_and_leaves_no_scratch(tmp_path: Path) -> None:
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"this is not a zip file")
    extractor = ArchiveExtractor(tmp_path / "scratch")

    with pytest.raises(ExtractionError, match="Could not extract ZIP file"):
        extractor.extract(_upload(archive))

    assert list((tmp_path / "scratch").iterdir()) == []


def test_empty_archive_rejected(tmp_path: Path) -> None:
    archive = tmp_path / "empty.zip"
    with zipfile.ZipFile(archive, "w"):
        pass
    extractor = ArchiveExtractor(tmp_path / "scratch")

    with pytest.raises(ExtractionError, match="empty"):
        extractor.extract(_upload(archive))


@pytest.mark.parametrize("member", ["../evil.txt", "nested/../../evil.txt", "/etc/evil.txt"])
def test_path_traversal_rejected(tmp_path: Path, build_zip, member: str) -> None:
    archive = build_zip(tmp_path / "evil.zip", {"module.json": "{}", member: "pwned"})
    extractor = ArchiveExtractor(tmp_path / "scratch")

    with pytest.raises(ExtractionError):
        extractor.extract(_upload(archive))

    assert not (tmp_path / "evil.txt").exists()
    assert list((tmp_path / "scratch").iterdir()) == []


def test_symlink_member_rejected(tmp_path: Path) -> None:
    archive = tmp_path / "link.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("module.json", "{}")
        info = zipfile.ZipInfo("link")
        info.external_attr = 0o120777 << 16
        zf.writestr(info, "/etc/passwd")
    extractor = ArchiveExtractor(tmp_path / "scratch")

    with pytest.raises(ExtractionError, match="Symlinks"):
        extractor.extract(_upload(archive))


def test_scratch_context_removes_dir_on_success_and_failure(tmp_path: Path, build_zip) -> None:
    archive = build_zip(tmp_path / "ok.zip", {"module.json": "{}"})
    extractor = ArchiveExtractor(tmp_path / "scratch")

    with extractor.scratch(_upload(archive)) as scratch:
        assert scratch.is_dir()
    assert not scratch.exists()

    with pytest.raises(RuntimeError):
        with extractor.scratch(_upload(archive)) as scratch:
            raise RuntimeError("downstream failure")
    assert not scratch.exists()


def test_scratch_context_tolerates_dir_moved_away(tmp_path: Path, build_zip) -> None:
    archive = build_zip(tmp_path / "ok.zip", {"module.json": "{}"})
    extractor = ArchiveExtractor(tmp_path / "scratch")

    with extractor.scratch(_upload(archive)) as scratch:
        scratch.rename(tmp_path / "moved")

    assert (tmp_path / "moved" / "module.json").exists()
