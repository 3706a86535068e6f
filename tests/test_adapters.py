import asyncio
import logging
import sys

import pytest

from adapters.container_engine import CliContainerEngine
from adapters.message_queue import RedisPublisher, build_publisher
from adapters.service_process import SubprocessLauncher
from conftest import make_settings
from core.errors import ConfigError
from core.interfaces.engine import EngineCommandError


def test_engine_passes_password_on_stdin_only():
    engine = CliContainerEngine(sys.executable)

    out = asyncio.run(engine._run("-c", "import sys; print(sys.stdin.read()[::-1])", stdin=b"secret"))

    assert out.strip() == "terces"


def test_engine_failure_keeps_output_tail():
    engine = CliContainerEngine(sys.executable)

    with pytest.raises(EngineCommandError) as err:
        asyncio.run(engine._run("-c", "print('denied: bad token'); raise SystemExit(3)"))

    assert err.value.returncode == 3
    assert "denied: bad token" in str(err.value)


def test_local_process_output_is_logged(tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="adapters.service_process")

    async def scenario():
        process = await SubprocessLauncher().start([sys.executable, "-c", "print('ready')"], cwd=tmp_path)
        return await process.wait(10)

    assert asyncio.run(scenario()) == 0
    assert any("ready" in record.getMessage() for record in caplog.records)


def test_wait_timeout_then_terminate(tmp_path):
    async def scenario():
        process = await SubprocessLauncher().start(
            [sys.executable, "-c", "import time; time.sleep(30)"], cwd=tmp_path
        )
        code = await process.wait(0.2)
        assert code is None
        return await process.terminate()

    assert asyncio.run(scenario()) != 0


def test_malformed_redis_url_is_a_config_error():
    with pytest.raises(ConfigError) as err:
        RedisPublisher.from_url("notaurl://x")
    assert "notaurl://x" in str(err.value)


def test_redis_timeouts_reach_the_connection():
    publisher = build_publisher(make_settings(redis_url="redis://localhost:6399/0", redis_timeout_seconds=2.5))

    kwargs = publisher._client.connection_pool.connection_kwargs
    assert kwargs["socket_timeout"] == 2.5
    assert kwargs["socket_connect_timeout"] == 2.5
