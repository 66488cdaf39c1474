import asyncio
import json
import shutil
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Sequence

import jwt
import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.core.config import get_settings
from app.core.db import Base, create_engine
from app.ingest.runner import ToolInvocationError, ToolResult
from app.main import create_app

JWT_SECRET = "test-secret"
JWT_ISSUER = "tubely-test"
JWT_AUDIENCE = "tubely"


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default Tubely environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    db_path = tmp_path / "tubely_test.db"

    monkeypatch.setenv("TUBELY_ENVIRONMENT", "test")
    monkeypatch.setenv("TUBELY_LOG_LEVEL", "debug")
    monkeypatch.setenv("TUBELY_DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("TUBELY_ASSETS_ROOT", str(tmp_path / "assets"))
    monkeypatch.setenv("TUBELY_STAGING_DIR", str(tmp_path / "staging"))
    monkeypatch.setenv("TUBELY_PUBLIC_BASE_URL", "http://testserver")
    monkeypatch.setenv("TUBELY_VIDEO_STORAGE_BACKEND", "local")
    monkeypatch.setenv("TUBELY_JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("TUBELY_JWT_ISSUER", JWT_ISSUER)
    monkeypatch.setenv("TUBELY_JWT_AUDIENCE", JWT_AUDIENCE)

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_setup())

    yield

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


class FakeRunner:
    """Stands in for ffprobe/ffmpeg: reports a fixed geometry and remuxes by copying."""

    def __init__(
        self,
        *,
        width: int = 1920,
        height: int = 1080,
        probe_returncode: int = 0,
        remux_returncode: int = 0,
        missing: Sequence[str] = (),
        stalled: Sequence[str] = (),
    ):
        self.width = width
        self.height = height
        self.probe_returncode = probe_returncode
        self.remux_returncode = remux_returncode
        self.missing = set(missing)
        self.stalled = set(stalled)
        self.calls: list[list[str]] = []

    def tools_called(self) -> list[str]:
        return [Path(call[0]).name for call in self.calls]

    def run(self, args: Sequence[str], *, timeout: Optional[float] = None) -> ToolResult:
        command = [str(arg) for arg in args]
        self.calls.append(command)
        tool = Path(command[0]).name
        if tool in self.missing:
            raise ToolInvocationError(f"{tool} not found on PATH")
        if tool in self.stalled:
            raise ToolInvocationError(f"{tool} timed out after {timeout}s")
        if "-version" in command:
            return ToolResult(args=tuple(command), returncode=0, stdout=f"{tool} version test", stderr="")
        if tool == "ffprobe":
            if self.probe_returncode:
                return ToolResult(
                    args=tuple(command),
                    returncode=self.probe_returncode,
                    stdout="",
                    stderr="Invalid data found when processing input",
                )
            payload = {
                "streams": [
                    {"index": 0, "codec_type": "audio", "codec_name": "aac"},
                    {"index": 1, "codec_type": "video", "codec_name": "h264", "width": self.width, "height": self.height},
                ]
            }
            return ToolResult(args=tuple(command), returncode=0, stdout=json.dumps(payload), stderr="")
        if tool == "ffmpeg":
            source = Path(command[command.index("-i") + 1])
            target = Path(command[-1])
            if self.remux_returncode:
                target.write_bytes(b"partial")
                return ToolResult(
                    args=tuple(command),
                    returncode=self.remux_returncode,
                    stdout="",
                    stderr="moov atom not found",
                )
            shutil.copyfile(source, target)
            return ToolResult(args=tuple(command), returncode=0, stdout="", stderr="")
        raise ToolInvocationError(f"{tool} not found on PATH")


class FakeUpload:
    """Minimal multipart file part for driving the ingest service directly."""

    def __init__(self, data: bytes, content_type: Optional[str], filename: str = "upload.bin"):
        self.data = data
        self.content_type = content_type
        self.filename = filename
        self.reads = 0
        self._offset = 0

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        if size < 0:
            size = len(self.data) - self._offset
        chunk = self.data[self._offset : self._offset + size]
        self._offset += len(chunk)
        return chunk


def opener_for(upload: FakeUpload):
    @asynccontextmanager
    async def _open():
        yield upload

    return _open


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def client(configure_environment, fake_runner):
    app = create_app()
    app.dependency_overrides[deps.get_tool_runner] = lambda: fake_runner
    with TestClient(app) as client:
        yield client


def build_token(user_id: str, *, scopes: list[str] | None = None) -> str:
    payload = {"sub": user_id, "iss": JWT_ISSUER, "aud": JWT_AUDIENCE}
    if scopes:
        payload["scopes"] = scopes
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


@pytest.fixture()
def user_headers() -> dict[str, str]:
    token = build_token("user-1")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def other_user_headers() -> dict[str, str]:
    token = build_token("user-2")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    token = build_token("user-admin", scopes=["admin"])
    return {"Authorization": f"Bearer {token}"}


def staged_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return [path for path in root.rglob("*") if path.is_file()]
