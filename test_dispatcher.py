"""
Dispatch tests: encoder selection order, fall-through on encode failure,
stream lifecycle and archive file resolution.
"""

import threading

import pytest

from conftest import CountingStream, FakeFetcher, RecordingEncoder
from keepsake.core.dispatcher import ArchiveDispatcher
from keepsake.core.encoders import DocumentExportEncoder, PageCaptureEncoder
from keepsake.core.errors import (
    ArchiveCancelled,
    DuplicateEncoderError,
    ExportFailed,
    FetchFailed,
    NoEncoderAvailable,
    UnknownEncoder,
)
from keepsake.core.models import BookmarkRecord, EbookExportRequest
from keepsake.core.registry import EncoderRegistry


HTML = b"<html><head><title>Example</title></head><body><p>Hello archive</p></body></html>"
PDF = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\n%%EOF\n"


def make_dispatcher(encoders, responses=None):
    return ArchiveDispatcher(EncoderRegistry(encoders), FakeFetcher(responses))


def test_html_selects_page_capture(file_manager, bookmark):
    dispatcher = make_dispatcher(
        [PageCaptureEncoder(file_manager), DocumentExportEncoder(file_manager)],
        {bookmark.url: (HTML, "text/html; charset=utf-8")},
    )

    updated = dispatcher.generate_archive(bookmark)

    assert updated.archiver == "page-capture"
    assert bookmark.archiver == ""
    assert file_manager.archive_path(bookmark.id, "page-capture", "zip").exists()


def test_pdf_without_pdf_encoder_has_no_match(file_manager, bookmark):
    dispatcher = make_dispatcher([PageCaptureEncoder(file_manager)],
                                 {bookmark.url: (PDF, "application/pdf")})

    with pytest.raises(NoEncoderAvailable) as excinfo:
        dispatcher.generate_archive(bookmark)

    assert excinfo.value.reason == NoEncoderAvailable.NO_MATCH
    assert excinfo.value.attempted == []
    assert excinfo.value.content_type == "application/pdf"
    assert excinfo.value.bookmark_id == bookmark.id


def test_first_registered_match_wins(file_manager, bookmark):
    first = RecordingEncoder(file_manager, "first", ["text/plain"])
    second = RecordingEncoder(file_manager, "second", ["text/plain"])
    dispatcher = make_dispatcher([first, second])

    updated = dispatcher.process_archive(CountingStream(b"abc", "text/plain"), bookmark)

    assert updated.archiver == "first"
    assert first.seen == [b"abc"]
    assert second.seen == []


def test_non_matching_encoders_are_skipped(file_manager, bookmark):
    other = RecordingEncoder(file_manager, "other", ["image/png"])
    plain = RecordingEncoder(file_manager, "plain", ["text/plain"])
    dispatcher = make_dispatcher([other, plain])

    updated = dispatcher.process_archive(CountingStream(b"abc", "TEXT/PLAIN; charset=ascii"), bookmark)

    assert updated.archiver == "plain"


def test_failed_encoder_falls_through_to_next(file_manager, bookmark):
    broken = RecordingEncoder(file_manager, "broken", ["text/plain"], fail=True)
    working = RecordingEncoder(file_manager, "working", ["text/plain"])
    dispatcher = make_dispatcher([broken, working])

    updated = dispatcher.process_archive(CountingStream(b"full body", "text/plain"), bookmark)

    assert updated.archiver == "working"
    # The stream was rewound after the broken encoder read part of it
    assert working.seen == [b"full body"]
    summary = dispatcher.errors.get_error_summary()
    assert summary["total_errors"] == 1
    assert summary["recent_errors"][0]["additional_info"]["encoder"] == "broken"


def test_sole_failing_encoder_reports_encode_failed(file_manager, bookmark):
    broken = RecordingEncoder(file_manager, "broken", ["text/plain"], fail=True)
    dispatcher = make_dispatcher([broken])

    with pytest.raises(NoEncoderAvailable) as excinfo:
        dispatcher.process_archive(CountingStream(b"abc", "text/plain"), bookmark)

    assert excinfo.value.reason == NoEncoderAvailable.ENCODE_FAILED
    assert excinfo.value.attempted == ["broken"]
    assert bookmark.archiver == ""
    assert not broken.has_archive(bookmark)


def test_stream_closed_once_on_success_and_failure(file_manager, bookmark):
    ok = make_dispatcher([RecordingEncoder(file_manager, "ok", ["text/plain"])])
    stream = CountingStream(b"abc", "text/plain")
    ok.process_archive(stream, bookmark)
    assert stream.close_calls == 1

    failing = make_dispatcher([RecordingEncoder(file_manager, "bad", ["text/plain"], fail=True)])
    stream = CountingStream(b"abc", "text/plain")
    with pytest.raises(NoEncoderAvailable):
        failing.process_archive(stream, bookmark)
    assert stream.close_calls == 1

    unmatched = CountingStream(b"abc", "image/gif")
    with pytest.raises(NoEncoderAvailable):
        failing.process_archive(unmatched, bookmark)
    assert unmatched.close_calls == 1


def test_fetch_failure_tries_no_encoder(file_manager, bookmark):
    encoder = RecordingEncoder(file_manager, "plain", ["text/html"])
    dispatcher = make_dispatcher([encoder], responses={})

    with pytest.raises(FetchFailed) as excinfo:
        dispatcher.generate_archive(bookmark)

    assert excinfo.value.bookmark_id == bookmark.id
    assert excinfo.value.status_code == 404
    assert encoder.seen == []


def test_cancelled_call_persists_nothing(file_manager, bookmark):
    encoder = RecordingEncoder(file_manager, "plain", ["text/plain"])
    dispatcher = make_dispatcher([encoder])
    cancel = threading.Event()
    cancel.set()
    stream = CountingStream(b"abc", "text/plain")

    with pytest.raises(ArchiveCancelled):
        dispatcher.process_archive(stream, bookmark, cancel_event=cancel)

    assert encoder.seen == []
    assert not encoder.has_archive(bookmark)
    assert stream.close_calls == 1


def test_cancel_during_encode_rolls_back(file_manager, bookmark):
    cancel = threading.Event()

    class CancellingEncoder(RecordingEncoder):
        def encode(self, stream, bookmark):
            result = super().encode(stream, bookmark)
            cancel.set()
            return result

    encoder = CancellingEncoder(file_manager, "plain", ["text/plain"])
    dispatcher = make_dispatcher([encoder])

    with pytest.raises(ArchiveCancelled):
        dispatcher.process_archive(CountingStream(b"abc", "text/plain"), bookmark, cancel_event=cancel)

    assert not encoder.has_archive(bookmark)


def test_cancelled_rearchive_keeps_previous_archive(file_manager, bookmark):
    cancel = threading.Event()

    class CancellingEncoder(RecordingEncoder):
        cancel_next = False

        def encode(self, stream, bookmark):
            result = super().encode(stream, bookmark)
            if self.cancel_next:
                cancel.set()
            return result

    encoder = CancellingEncoder(file_manager, "plain", ["text/plain"])
    dispatcher = make_dispatcher([encoder])
    archived = dispatcher.process_archive(CountingStream(b"v1", "text/plain"), bookmark, cancel_event=cancel)

    encoder.cancel_next = True
    with pytest.raises(ArchiveCancelled):
        dispatcher.process_archive(CountingStream(b"v2", "text/plain"), archived, cancel_event=cancel)

    assert encoder.seen == [b"v1", b"v2"]
    assert dispatcher.resolve_archive_file(archived, "").content == b"v1"
    assert [p.name for p in encoder.archive_path(archived).parent.iterdir()] == ["plain.raw"]


def test_failed_rearchive_keeps_previous_archive(file_manager, bookmark):
    encoder = RecordingEncoder(file_manager, "plain", ["text/plain"])
    dispatcher = make_dispatcher([encoder])
    archived = dispatcher.process_archive(CountingStream(b"v1", "text/plain"), bookmark)

    encoder.fail = True
    with pytest.raises(NoEncoderAvailable):
        dispatcher.process_archive(CountingStream(b"v2", "text/plain"), archived)

    assert dispatcher.resolve_archive_file(archived, "").content == b"v1"


def test_writer_locks_do_not_accumulate(file_manager):
    dispatcher = make_dispatcher([RecordingEncoder(file_manager, "plain", ["text/plain"])])

    for bookmark_id in range(1, 51):
        dispatcher.process_archive(CountingStream(b"x", "text/plain"),
                                   BookmarkRecord(id=bookmark_id, url="https://example.com/"))
    with pytest.raises(NoEncoderAvailable):
        dispatcher.process_archive(CountingStream(b"x", "image/png"),
                                   BookmarkRecord(id=99, url="https://example.com/"))

    assert dispatcher._locks == {}


def test_writer_lock_is_shared_while_held(file_manager, bookmark):
    encoder = RecordingEncoder(file_manager, "plain", ["text/plain"])
    dispatcher = make_dispatcher([encoder])
    finished = threading.Event()

    def archive():
        dispatcher.process_archive(CountingStream(b"late", "text/plain"), bookmark)
        finished.set()

    with dispatcher._writer_lock(bookmark.id):
        worker = threading.Thread(target=archive)
        worker.start()
        assert not finished.wait(0.2)
        assert encoder.seen == []

    worker.join(timeout=5)
    assert finished.is_set()
    assert encoder.seen == [b"late"]
    assert dispatcher._locks == {}


def test_rearchive_with_other_encoder_drops_old_artifact(file_manager, bookmark):
    old = RecordingEncoder(file_manager, "old", ["image/png"])
    new = RecordingEncoder(file_manager, "new", ["text/plain"])
    dispatcher = make_dispatcher([old, new])

    archived = dispatcher.process_archive(CountingStream(b"png", "image/png"), bookmark)
    assert old.has_archive(archived)

    rearchived = dispatcher.process_archive(CountingStream(b"txt", "text/plain"), archived)

    assert rearchived.archiver == "new"
    assert new.has_archive(rearchived)
    assert not old.has_archive(rearchived)


def test_resolve_unknown_archiver_fails_explicitly(file_manager, bookmark):
    dispatcher = make_dispatcher([RecordingEncoder(file_manager, "plain", ["text/plain"])])
    stale = BookmarkRecord(id=1, url="https://example.com/", archiver="retired-format")

    with pytest.raises(UnknownEncoder) as excinfo:
        dispatcher.resolve_archive_file(stale, "")
    assert excinfo.value.name == "retired-format"
    assert excinfo.value.bookmark_id == 1

    with pytest.raises(UnknownEncoder):
        dispatcher.resolve_archive_file(bookmark, "")


def test_resolve_root_is_repeatable(file_manager, bookmark):
    dispatcher = make_dispatcher([PageCaptureEncoder(file_manager)],
                                 {bookmark.url: (HTML, "text/html")})
    updated = dispatcher.generate_archive(bookmark)

    first = dispatcher.resolve_archive_file(updated, "")
    second = dispatcher.resolve_archive_file(updated, "/")

    assert first.content == second.content
    assert b"Hello archive" in first.content


def test_get_encoder(file_manager):
    page = PageCaptureEncoder(file_manager)
    dispatcher = make_dispatcher([page])

    assert dispatcher.get_encoder("page-capture") is page
    with pytest.raises(UnknownEncoder):
        dispatcher.get_encoder("document-export")


def test_duplicate_encoder_names_rejected(file_manager):
    with pytest.raises(DuplicateEncoderError):
        EncoderRegistry([
            RecordingEncoder(file_manager, "same", ["text/plain"]),
            RecordingEncoder(file_manager, "same", ["text/html"]),
        ])


def test_registry_preserves_order(file_manager):
    registry = EncoderRegistry([
        RecordingEncoder(file_manager, "b", ["text/plain"]),
        RecordingEncoder(file_manager, "a", ["text/plain", "text/html"]),
    ])

    assert registry.names == ["b", "a"]
    assert [e.name for e in registry.match("text/plain")] == ["b", "a"]
    assert [e.name for e in registry.match("text/html")] == ["a"]
    assert "a" in registry and "c" not in registry


def test_delete_archive_clears_archiver(file_manager, bookmark):
    encoder = RecordingEncoder(file_manager, "plain", ["text/plain"])
    dispatcher = make_dispatcher([encoder])
    archived = dispatcher.process_archive(CountingStream(b"abc", "text/plain"), bookmark)

    cleared = dispatcher.delete_archive(archived)

    assert cleared.archiver == ""
    assert not encoder.has_archive(archived)


def test_export_requires_store(file_manager, tmp_path):
    dispatcher = make_dispatcher([PageCaptureEncoder(file_manager)])

    with pytest.raises(ExportFailed):
        dispatcher.export_to_document(EbookExportRequest(bookmark_ids=[1], output_path=str(tmp_path / "x.pdf")))
