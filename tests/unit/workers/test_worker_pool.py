import json

import pytest

from churnbench.env import Env
from churnbench.errors import CheckpointError, SetupFailure
from churnbench.stats import StatsReporter
from churnbench.workers import WorkerPool
from tests.unit.fakes import FakeFaucetClient, FakeLedgerClient, StallingFaucetClient


def make_env(**overrides) -> Env:
    values = {
        "CHURNBENCH_WORKERS": 2,
        "CHURNBENCH_SEED_OBJECTS": 30,
        "CHURNBENCH_BATCH_SIZE": 5,
        "CHURNBENCH_DURATION": "300ms",
        "CHURNBENCH_TARGET_TPS": 100,
        "CHURNBENCH_MEMORY_SAMPLE_INTERVAL": "50ms",
    }
    values.update(overrides)
    return Env(**values)


def make_pool(
    env: Env,
    ledger_client: FakeLedgerClient,
    faucet_client: FakeFaucetClient,
    memory_usage: float = 0.1,
) -> WorkerPool:
    return WorkerPool(
        env,
        ledger_client=ledger_client,
        faucet_client=faucet_client,
        memory_sampler=lambda: memory_usage,
        seed=7,
    )


class FailingConnectLedgerClient(FakeLedgerClient):
    async def get_reference_gas_price(self) -> int:
        raise ConnectionError("connection refused")


class TestWorkerPoolSetup:
    @pytest.mark.asyncio
    async def test_fresh_setup_funds_and_seeds(
        self,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        pool = make_pool(make_env(), ledger_client, faucet_client)

        states = await pool.setup()

        assert [state.worker_id for state in states] == [0, 1]
        assert len(set(faucet_client.funded)) == 2
        assert all(len(state.tracker) == 30 for state in states)

    @pytest.mark.asyncio
    async def test_seed_batches_are_capped(
        self,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        env = make_env(
            CHURNBENCH_WORKERS=1,
            CHURNBENCH_SEED_OBJECTS=250,
            CHURNBENCH_USE_LARGE_PAYLOAD=True,
        )

        await make_pool(env, ledger_client, faucet_client).setup()

        counts = [operation.count for operation in ledger_client.submissions]
        assert sum(counts) == 250
        assert max(counts) == 20

    @pytest.mark.asyncio
    async def test_unreachable_node_fails_setup(self, faucet_client: FakeFaucetClient) -> None:
        pool = make_pool(make_env(), FailingConnectLedgerClient(), faucet_client)

        with pytest.raises(SetupFailure):
            await pool.setup()

    @pytest.mark.asyncio
    async def test_seed_failure_fails_setup(
        self,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        ledger_client.fail_next = 1
        pool = make_pool(make_env(CHURNBENCH_WORKERS=1), ledger_client, faucet_client)

        with pytest.raises(SetupFailure):
            await pool.setup()

    @pytest.mark.asyncio
    async def test_funding_failure_cancels_pending_requests(
        self,
        ledger_client: FakeLedgerClient,
    ) -> None:
        faucet_client = StallingFaucetClient(ledger_client)
        pool = make_pool(make_env(CHURNBENCH_WORKERS=4), ledger_client, faucet_client)

        with pytest.raises(SetupFailure):
            await pool.setup()

        assert len(faucet_client.funded) > 1
        assert faucet_client.cancelled == len(faucet_client.funded) - 1

    @pytest.mark.asyncio
    async def test_missing_checkpoint_fails_setup(
        self,
        tmp_path,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        env = make_env(CHURNBENCH_LOAD_PATH=str(tmp_path / "missing.json"))

        with pytest.raises(CheckpointError):
            await make_pool(env, ledger_client, faucet_client).setup()


class TestWorkerPoolRun:
    @pytest.mark.asyncio
    async def test_run_writes_summary_and_checkpoint(
        self,
        tmp_path,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        output_path = tmp_path / "results.json"
        save_path = tmp_path / "objects.json"
        env = make_env(
            CHURNBENCH_OUTPUT_PATH=str(output_path),
            CHURNBENCH_SAVE_PATH=str(save_path),
        )
        pool = make_pool(env, ledger_client, faucet_client)

        snapshot = await pool.run()

        assert ledger_client.connected is True
        assert ledger_client.closed is True
        assert snapshot.submitted > 0
        assert snapshot.failed == 0

        summary = json.loads(output_path.read_text())
        assert summary["tx_success"] == snapshot.succeeded
        assert summary["config"]["workers"] == 2

        checkpoint = json.loads(save_path.read_text())
        assert len(checkpoint["workers"]) == 2
        assert checkpoint["total_objects"] == sum(
            len(state.tracker) for state in pool.states
        )

    @pytest.mark.asyncio
    async def test_resume_restores_identities_and_drops_missing(
        self,
        tmp_path,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        """Resuming keeps saved identities and forgets objects gone from the ledger."""
        save_path = tmp_path / "objects.json"
        first = make_pool(
            make_env(CHURNBENCH_SAVE_PATH=str(save_path)),
            ledger_client,
            faucet_client,
        )
        await first.run()

        saved = json.loads(save_path.read_text())
        dropped = saved["workers"][0]["objects"][0]["id"]
        ledger_client.deleted.add(dropped)

        resumed = make_pool(
            make_env(
                CHURNBENCH_WORKERS=5,
                CHURNBENCH_LOAD_PATH=str(save_path),
            ),
            ledger_client,
            faucet_client,
        )
        states = await resumed.setup()

        assert len(states) == 2
        assert [state.identity.address for state in states] == [
            worker["address"] for worker in saved["workers"]
        ]
        assert len(states[0].tracker) == len(saved["workers"][0]["objects"]) - 1
        assert dropped not in {resource.handle for resource in states[0].tracker}

        for state in states:
            for resource in state.tracker:
                assert resource.version == ledger_client.objects[resource.handle].version

    @pytest.mark.asyncio
    async def test_emergency_run_creates_nothing(
        self,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        """Test that a run pinned at emergency pressure only updates."""
        env = make_env(CHURNBENCH_CREATE_PCT=100, CHURNBENCH_DURATION="500ms")
        pool = make_pool(env, ledger_client, faucet_client, memory_usage=0.99)

        await pool.setup()
        ledger_client.submissions.clear()
        snapshot = await pool._execute()

        assert snapshot.created == 0
        assert snapshot.succeeded > 0

    @pytest.mark.asyncio
    async def test_request_stop_ends_run_early(
        self,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        env = make_env(CHURNBENCH_DURATION="1h")
        pool = make_pool(env, ledger_client, faucet_client)
        pool.request_stop()

        snapshot = await pool.run()

        assert snapshot.submitted == 0

    @pytest.mark.asyncio
    async def test_resumed_summary_reports_checkpoint_workers(
        self,
        tmp_path,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        """The summary reports the worker count the checkpoint decided."""
        save_path = tmp_path / "objects.json"
        output_path = tmp_path / "results.json"
        await make_pool(
            make_env(CHURNBENCH_SAVE_PATH=str(save_path), CHURNBENCH_DURATION="100ms"),
            ledger_client,
            faucet_client,
        ).run()

        resumed = make_pool(
            make_env(
                CHURNBENCH_WORKERS=16,
                CHURNBENCH_DURATION="100ms",
                CHURNBENCH_LOAD_PATH=str(save_path),
                CHURNBENCH_OUTPUT_PATH=str(output_path),
            ),
            ledger_client,
            faucet_client,
        )
        await resumed.run()

        summary = json.loads(output_path.read_text())
        assert summary["config"]["workers"] == 2
        assert summary["config"]["batch_size"] == 5

    @pytest.mark.asyncio
    async def test_reporter_stop_failure_still_persists(
        self,
        tmp_path,
        monkeypatch,
        ledger_client: FakeLedgerClient,
        faucet_client: FakeFaucetClient,
    ) -> None:
        async def failing_stop(self) -> None:
            self._stop.set()
            raise RuntimeError("reporter crashed")

        monkeypatch.setattr(StatsReporter, "stop", failing_stop)

        output_path = tmp_path / "results.json"
        save_path = tmp_path / "objects.json"
        env = make_env(
            CHURNBENCH_DURATION="100ms",
            CHURNBENCH_OUTPUT_PATH=str(output_path),
            CHURNBENCH_SAVE_PATH=str(save_path),
        )
        pool = make_pool(env, ledger_client, faucet_client)

        await pool.run()

        assert output_path.exists()
        assert save_path.exists()
