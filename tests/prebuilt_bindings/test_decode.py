# === NAVMAP v1 ===
# {
#   "module": "tests.prebuilt_bindings.test_decode",
#   "purpose": "Redirect handling, decode stage planning and partial-file cleanup in materialize.",
#   "sections": [
#     {"id": "planning", "name": "Stage Planning", "anchor": "PLN", "kind": "tests"},
#     {"id": "materialize", "name": "Materialize", "anchor": "MAT", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Redirect handling, decode stage planning and partial-file cleanup in materialize."""

from __future__ import annotations

import asyncio
import gzip
import os
from pathlib import Path

import httpx
import pytest

from PrebuiltBindings.errors import DecodeError, HttpStatusError, TooManyRedirects, TransportError
from PrebuiltBindings.io.decode import DecodeContext, GunzipStage, materialize
from PrebuiltBindings.network.fetch import ResponseHeaders
from PrebuiltBindings.testing import FakeReleaseServer, ResponseSpec, deflate_bytes, gzip_bytes

PAYLOAD = os.urandom(4096) + b"binding" * 512
BASE = "https://releases.example.test/v1.0.0"


def _headers(encoding: str | None = None) -> ResponseHeaders:
    return ResponseHeaders.from_headers({"content-encoding": encoding} if encoding else {})


def _materialize(server: FakeReleaseServer, url: str, destination: Path, **kwargs):
    async def _run():
        async with server.client() as client:
            return await materialize(url, destination, client=client, **kwargs)

    return asyncio.run(_run())


# --- Stage Planning -----------------------------------------------------------


@pytest.mark.parametrize(
    ("encoding", "url", "expected"),
    [
        (None, f"{BASE}/fast.so", ()),
        ("identity", f"{BASE}/fast.so", ()),
        ("gzip", f"{BASE}/fast.so", ("gunzip",)),
        ("x-gzip", f"{BASE}/fast.so", ("gunzip",)),
        ("deflate", f"{BASE}/fast.so", ("inflate",)),
        (None, f"{BASE}/fast.so.gz", ("gunzip",)),
        ("gzip", f"{BASE}/fast.so.gz", ("gunzip", "gunzip")),
        ("br", f"{BASE}/fast.so.gz?token=1", ("gunzip",)),
    ],
)
def test_stage_planning(encoding, url, expected):
    assert DecodeContext.plan(_headers(encoding), url).stage_names == expected


def test_gunzip_stage_handles_multiple_members():
    stage = GunzipStage()
    stream = gzip.compress(b"first-") + gzip.compress(b"second")

    out = b"".join(stage.feed(stream[i : i + 7]) for i in range(0, len(stream), 7))

    assert out + stage.finish() == b"first-second"


def test_two_stage_context_streams_in_small_chunks():
    context = DecodeContext.plan(_headers("gzip"), f"{BASE}/fast.so.gz")
    body = gzip_bytes(gzip_bytes(PAYLOAD))

    out = b"".join(context.feed(body[i : i + 100]) for i in range(0, len(body), 100))

    assert out + context.finish() == PAYLOAD


# --- Materialize --------------------------------------------------------------


def test_direct_200_writes_identity_body(server: FakeReleaseServer, tmp_path: Path):
    url = f"{BASE}/fast.so"
    server.serve(url, ResponseSpec(body=PAYLOAD))
    destination = tmp_path / "fast.so"

    result = _materialize(server, url, destination)

    assert destination.read_bytes() == PAYLOAD
    assert result.bytes_written == len(PAYLOAD)
    assert result.stages == ()
    assert result.hops == [(url, 200)]


def test_gz_container_with_gzip_transport_applies_two_stages(
    server: FakeReleaseServer, tmp_path: Path
):
    url = f"{BASE}/fast.so.gz"
    server.serve(
        url,
        ResponseSpec(body=gzip_bytes(gzip_bytes(PAYLOAD)), headers={"Content-Encoding": "gzip"}),
    )
    destination = tmp_path / "fast.so"

    result = _materialize(server, url, destination)

    assert result.stages == ("gunzip", "gunzip")
    assert destination.read_bytes() == PAYLOAD


def test_deflate_transport_encoding(server: FakeReleaseServer, tmp_path: Path):
    url = f"{BASE}/fast.so"
    server.serve(url, ResponseSpec(body=deflate_bytes(PAYLOAD), headers={"Content-Encoding": "deflate"}))
    destination = tmp_path / "fast.so"

    result = _materialize(server, url, destination)

    assert result.stages == ("inflate",)
    assert destination.read_bytes() == PAYLOAD


def test_requests_advertise_gzip_and_deflate(server: FakeReleaseServer, tmp_path: Path):
    url = f"{BASE}/fast.so"
    server.serve(url, ResponseSpec(body=PAYLOAD))

    _materialize(server, url, tmp_path / "fast.so")

    accept = server.requests[0].headers["accept-encoding"]
    assert "gzip" in accept and "deflate" in accept


@pytest.mark.parametrize("status", [301, 302, 303, 307, 308])
def test_redirect_chain_matches_direct_download(
    server: FakeReleaseServer, tmp_path: Path, status: int
):
    direct_url = f"{BASE}/direct/fast.so.gz"
    server.serve(direct_url, ResponseSpec(body=gzip_bytes(PAYLOAD)))
    chain = [f"{BASE}/fast.so.gz", f"{BASE}/hop1", f"https://cdn.example.test/blob/{status}"]
    server.serve_chain(chain, ResponseSpec(body=gzip_bytes(PAYLOAD)), status=status)

    direct = tmp_path / "direct.so"
    redirected = tmp_path / "redirected.so"
    _materialize(server, direct_url, direct)
    result = _materialize(server, chain[0], redirected)

    assert redirected.read_bytes() == direct.read_bytes() == PAYLOAD
    assert result.final_url == chain[-1]
    assert [hop for hop, _ in result.hops] == chain


def test_relative_location_is_resolved(server: FakeReleaseServer, tmp_path: Path):
    server.serve(f"{BASE}/fast.so", ResponseSpec.redirect("/assets/fast.so"))
    server.serve("https://releases.example.test/assets/fast.so", ResponseSpec(body=PAYLOAD))
    destination = tmp_path / "fast.so"

    result = _materialize(server, f"{BASE}/fast.so", destination)

    assert result.final_url == "https://releases.example.test/assets/fast.so"
    assert destination.read_bytes() == PAYLOAD


def test_redirect_limit_is_inclusive(server: FakeReleaseServer, tmp_path: Path):
    chain = [f"{BASE}/hop{i}" for i in range(3)]
    server.serve_chain(chain, ResponseSpec(body=PAYLOAD))

    result = _materialize(server, chain[0], tmp_path / "fast.so", max_redirects=2)

    assert len(result.hops) == 3


def test_too_many_redirects(server: FakeReleaseServer, tmp_path: Path):
    chain = [f"{BASE}/hop{i}" for i in range(4)]
    server.serve_chain(chain, ResponseSpec(body=PAYLOAD))
    destination = tmp_path / "fast.so"

    with pytest.raises(TooManyRedirects) as excinfo:
        _materialize(server, chain[0], destination, max_redirects=2)

    assert excinfo.value.max_hops == 2
    assert chain[-1] not in server.requested_urls
    assert not destination.exists()


def test_redirect_loop_is_bounded(server: FakeReleaseServer, tmp_path: Path):
    server.serve(f"{BASE}/a", ResponseSpec.redirect(f"{BASE}/b"))
    server.serve(f"{BASE}/b", ResponseSpec.redirect(f"{BASE}/a"))

    with pytest.raises(TooManyRedirects):
        _materialize(server, f"{BASE}/a", tmp_path / "fast.so", max_redirects=5)

    assert len(server.requests) == 6


def test_redirect_without_location(server: FakeReleaseServer, tmp_path: Path):
    server.serve(f"{BASE}/fast.so", ResponseSpec(status=302))

    with pytest.raises(HttpStatusError, match="missing Location"):
        _materialize(server, f"{BASE}/fast.so", tmp_path / "fast.so")


def test_not_found_removes_stale_destination(server: FakeReleaseServer, tmp_path: Path):
    destination = tmp_path / "fast.so"
    destination.write_bytes(b"stale")

    with pytest.raises(HttpStatusError) as excinfo:
        _materialize(server, f"{BASE}/missing.so", destination)

    assert excinfo.value.status_code == 404
    assert not destination.exists()


def test_corrupt_gzip_removes_partial_file(server: FakeReleaseServer, tmp_path: Path):
    url = f"{BASE}/fast.so.gz"
    server.serve(url, ResponseSpec(body=b"\x1f\x8b\x08\x00garbage-garbage-garbage"))
    destination = tmp_path / "fast.so"

    with pytest.raises(DecodeError):
        _materialize(server, url, destination)

    assert not destination.exists()


def test_truncated_gzip_is_rejected(server: FakeReleaseServer, tmp_path: Path):
    url = f"{BASE}/fast.so.gz"
    server.serve(url, ResponseSpec(body=gzip_bytes(PAYLOAD)[:-64]))
    destination = tmp_path / "fast.so"

    with pytest.raises(DecodeError, match="ended unexpectedly"):
        _materialize(server, url, destination)

    assert not destination.exists()


@pytest.mark.parametrize("error", [httpx.ConnectError, httpx.ReadTimeout])
def test_transport_failures_are_wrapped(server: FakeReleaseServer, tmp_path: Path, error):
    url = f"{BASE}/fast.so"
    server.serve(url, ResponseSpec(error=error))

    with pytest.raises(TransportError) as excinfo:
        _materialize(server, url, tmp_path / "fast.so")

    assert excinfo.value.url == url


def test_unsupported_scheme_is_a_transport_error(server: FakeReleaseServer, tmp_path: Path):
    with pytest.raises(TransportError, match="Unsupported URL scheme"):
        _materialize(server, "ftp://releases.example.test/fast.so", tmp_path / "fast.so")

    assert server.requests == []


def test_directory_at_destination_is_a_decode_error(server: FakeReleaseServer, tmp_path: Path):
    url = f"{BASE}/fast.so"
    server.serve(url, ResponseSpec(body=PAYLOAD))
    destination = tmp_path / "fast.so"
    destination.mkdir()

    with pytest.raises(DecodeError):
        _materialize(server, url, destination)

    assert destination.is_dir()
