"""
Tests for concurrent orchestrator execution.
"""

import asyncio

import pytest

from taskrail.services.orchestrator.definitions import define_orchestrator, define_track
from taskrail.services.orchestrator.errors import AggregateBranchError
from taskrail.services.orchestrator.models import Branch, RunContext, TaskOutcome, TaskRef
from taskrail.services.orchestrator.orchestrator import OrchestratorEngine, run_orchestrator

BASE_INPUT = {"tenantId": "t1", "projectId": "p1"}


class TestOrchestratorFanOut:

    @pytest.mark.asyncio
    async def test_results_keyed_by_branch(self, invoker):
        orchestrator = define_orchestrator("O", [{"id": "echoA"}, {"id": "echoB"}])

        envelope = await run_orchestrator(orchestrator, {**BASE_INPUT, "x": 1}, invoker)

        assert envelope["job"]["success"] is True
        assert set(envelope["results"]["tracks"]) == {"echoA", "echoB"}
        assert set(envelope["results"]["orchestrator"]) == {"echoA", "echoB"}
        assert envelope["results"]["orchestrator"]["echoA"]["x"] == 1
        assert envelope["results"]["orchestrator"]["echoB"]["x"] == 1
        assert envelope["results"]["tracks"]["echoA"]["results"]["x"] == 1
        assert envelope["metadata"]["orchestrator"]["branches"] == ["echoA", "echoB"]
        assert envelope["metadata"]["tracks"]["echoB"]["kind"] == "task"

    @pytest.mark.asyncio
    async def test_branches_run_concurrently(self, registry, invoker):
        ping_seen = asyncio.Event()
        pong_seen = asyncio.Event()

        async def ping(payload):
            ping_seen.set()
            await asyncio.wait_for(pong_seen.wait(), timeout=1.0)
            return {"ping": True}

        async def pong(payload):
            pong_seen.set()
            await asyncio.wait_for(ping_seen.wait(), timeout=1.0)
            return {"pong": True}

        registry.register("ping", ping)
        registry.register("pong", pong)
        orchestrator = define_orchestrator("concurrent", ["ping", "pong"])

        envelope = await run_orchestrator(orchestrator, BASE_INPUT, invoker)

        assert envelope["job"]["success"] is True
        assert envelope["results"]["orchestrator"] == {"ping": {"ping": True}, "pong": {"pong": True}}

    @pytest.mark.asyncio
    async def test_track_branch_runs_whole_track(self, invoker, call_log):
        pipeline = define_track("pipeline", ["A", "B"])
        orchestrator = define_orchestrator("with-track", [pipeline, "echoA"])

        envelope = await run_orchestrator(orchestrator, {**BASE_INPUT, "n": 0}, invoker)

        assert envelope["job"]["success"] is True
        assert envelope["results"]["orchestrator"]["pipeline"]["n"] == 2
        assert envelope["results"]["orchestrator"]["pipeline"]["tenantId"] == "t1"
        metadata = envelope["metadata"]["tracks"]["pipeline"]
        assert metadata["kind"] == "track"
        assert metadata["runId"].startswith("track_")
        assert set(metadata["tasks"]) == {"A", "B"}
        assert call_log.inputs("echoA")[0]["n"] == 0

    @pytest.mark.asyncio
    async def test_track_branch_keeps_orchestrator_identity(self, invoker, call_log, run_input):
        pipeline = define_track("pipeline", ["A"])
        orchestrator = define_orchestrator("identity", [
            Branch(pipeline, input_mapper=lambda run: {"tenantId": "other", "n": 4}),
        ])

        envelope = await run_orchestrator(orchestrator, run_input, invoker)

        task_input = call_log.inputs("A")[0]
        assert task_input["tenantId"] == "t1"
        assert task_input["userId"] == "u1"
        assert task_input["n"] == 4
        assert envelope["results"]["orchestrator"]["pipeline"]["n"] == 5

    @pytest.mark.asyncio
    async def test_branch_mappers_work_on_private_copies(self, invoker, call_log, run_input):
        def greedy(run):
            run["trampData"]["callback"]["id"] = "mutated"
            run["extra"] = True
            return run

        orchestrator = define_orchestrator("isolated", [
            Branch(TaskRef("echoA"), input_mapper=greedy),
            "echoB",
        ])

        envelope = await run_orchestrator(orchestrator, run_input, invoker)

        assert call_log.inputs("echoA")[0]["trampData"]["callback"]["id"] == "mutated"
        assert call_log.inputs("echoB")[0]["trampData"]["callback"]["id"] == "cb-1"
        assert "extra" not in call_log.inputs("echoB")[0]
        assert run_input["trampData"]["callback"]["id"] == "cb-1"
        assert envelope["trampData"]["callback"]["id"] == "cb-1"

    @pytest.mark.asyncio
    async def test_mapping_branch_form(self, invoker, call_log):
        orchestrator = define_orchestrator("mapped", [
            {"taskOrTrack": "echoA", "inputMapper": lambda run: {"message": "hi"}},
        ])

        envelope = await run_orchestrator(orchestrator, BASE_INPUT, invoker)

        assert call_log.inputs("echoA")[0] == {"message": "hi"}
        assert envelope["results"]["orchestrator"]["echoA"] == {"message": "hi"}


class TestOrchestratorFailures:

    @pytest.mark.asyncio
    async def test_slow_branch_still_completes_when_another_fails(self, registry, invoker):
        finished = []

        async def slow(payload):
            await asyncio.sleep(0.05)
            finished.append("slow")
            return {"slow": "done"}

        registry.register("slow", slow)
        orchestrator = define_orchestrator("join", ["fail", "slow"])

        envelope = await run_orchestrator(orchestrator, BASE_INPUT, invoker)

        assert finished == ["slow"]
        assert envelope["job"]["success"] is False
        assert envelope["job"]["error"] == "Some branches failed: fail: boom"
        assert envelope["results"]["tracks"]["slow"]["results"] == {"slow": "done"}
        assert envelope["metadata"]["tracks"]["slow"]["status"] == "completed"
        assert envelope["results"]["tracks"]["fail"]["error"] == "boom"
        assert envelope["results"]["orchestrator"] == {}

    @pytest.mark.asyncio
    async def test_every_failure_is_reported(self, registry, invoker):
        async def fail_again(payload):
            raise ValueError("bad")

        registry.register("fail2", fail_again)
        orchestrator = define_orchestrator("many", ["fail", "echoA", "fail2"])

        envelope = await run_orchestrator(orchestrator, BASE_INPUT, invoker)

        assert envelope["job"]["error"] == "Some branches failed: fail: boom; fail2: bad"
        assert envelope["metadata"]["orchestrator"]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_mapper_failure_does_not_stop_siblings(self, invoker, call_log):
        orchestrator = define_orchestrator("bad-mapper", [
            Branch(TaskRef("echoA"), input_mapper=lambda run: 1 / 0),
            "echoB",
        ])

        envelope = await run_orchestrator(orchestrator, BASE_INPUT, invoker)

        assert envelope["job"]["error"] == (
            "Some branches failed: echoA: Input mapper for branch echoA failed: division by zero"
        )
        assert call_log.count("echoA") == 0
        assert call_log.count("echoB") == 1
        assert envelope["metadata"]["tracks"]["echoA"]["code"] == "MAPPER_FAILED"

    @pytest.mark.asyncio
    async def test_failed_track_branch(self, invoker, call_log):
        broken = define_track("broken", ["A", "fail", "C"])
        orchestrator = define_orchestrator("tracks", [broken, "echoA"])

        envelope = await run_orchestrator(orchestrator, {**BASE_INPUT, "n": 0}, invoker)

        assert envelope["job"]["error"] == "Some branches failed: broken: Task fail failed: boom"
        metadata = envelope["metadata"]["tracks"]["broken"]
        assert metadata["code"] == "TASK_FAILED"
        assert set(metadata["tasks"]) == {"A", "fail"}
        assert call_log.count("C") == 0
        assert envelope["results"]["tracks"]["echoA"]["metadata"]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_missing_context_fails_before_any_branch(self, invoker, call_log):
        orchestrator = define_orchestrator("ctx", ["echoA"])

        envelope = await run_orchestrator(orchestrator, {"projectId": "p1"}, invoker)

        assert envelope["job"]["success"] is False
        assert envelope["job"]["error"] == "Missing required field: tenantId"
        assert envelope["results"] == {"orchestrator": {}, "tracks": {}}
        assert call_log.calls == []

    @pytest.mark.asyncio
    async def test_execute_raises_aggregate_error(self, invoker):
        orchestrator = define_orchestrator("raw", ["echoA", "fail"])
        engine = OrchestratorEngine(invoker)

        with pytest.raises(AggregateBranchError) as exc_info:
            await engine.execute(orchestrator, RunContext("t1", "p1"), {}, "orchestrator_test")

        assert exc_info.value.failures_by_branch() == {"fail": "boom"}
        assert list(exc_info.value.partial.succeeded) == ["echoA"]

    @pytest.mark.asyncio
    async def test_non_mapping_output_fails_only_its_branch(self, scripted_invoker, slow_task):
        invoker = scripted_invoker(listy=TaskOutcome.success(["a", "b", "c"]))
        orchestrator = define_orchestrator("O", ["listy", "slow"])

        envelope = await run_orchestrator(orchestrator, BASE_INPUT, invoker)

        assert slow_task == ["slow"]
        assert envelope["job"]["error"] == (
            "Some branches failed: listy: Task listy returned list output, expected a mapping"
        )
        assert envelope["metadata"]["tracks"]["listy"]["code"] == "INVALID_OUTPUT"
        assert envelope["results"]["tracks"]["slow"]["results"] == {"slow": "done"}

    @pytest.mark.asyncio
    async def test_unexpected_branch_error_still_joins_siblings(self, scripted_invoker, slow_task):
        invoker = scripted_invoker(broken=None)
        orchestrator = define_orchestrator("O", ["broken", "slow"])

        envelope = await run_orchestrator(orchestrator, BASE_INPUT, invoker)

        assert slow_task == ["slow"]
        assert envelope["job"]["error"].startswith("Some branches failed: broken: ")
        assert envelope["metadata"]["tracks"]["broken"]["code"] == "PLATFORM_ERROR"
        assert envelope["metadata"]["tracks"]["slow"]["status"] == "completed"
        assert envelope["results"]["tracks"]["slow"]["results"] == {"slow": "done"}


class TestOrchestratorEnvelopeShape:

    @pytest.mark.asyncio
    async def test_success_and_failure_share_keys(self, invoker, run_input):
        success = await run_orchestrator(define_orchestrator("ok", ["echoA", "echoB"]), run_input, invoker)
        failure = await run_orchestrator(define_orchestrator("ko", ["echoA", "fail"]), run_input, invoker)

        assert success["job"]["success"] is True
        assert failure["job"]["success"] is False
        assert set(failure) == set(success)
        assert set(failure["results"]) == set(success["results"])
        assert set(failure["metadata"]) == set(success["metadata"])
        assert set(failure["job"]) == set(success["job"]) | {"error"}

    @pytest.mark.asyncio
    async def test_tramp_data_survives_failure(self, invoker, run_input):
        orchestrator = define_orchestrator("ko", [
            Branch(TaskRef("fail"), input_mapper=lambda run: {**run, "trampData": {"other": 1}}),
        ])

        envelope = await run_orchestrator(orchestrator, run_input, invoker)

        assert envelope["job"]["success"] is False
        assert envelope["trampData"] == run_input["trampData"]
        assert envelope["job"]["input"] == run_input


class TestOrchestratorLogging:

    @pytest.mark.asyncio
    async def test_secondary_logging_when_enabled(self, invoker, secondary_log, recording_sink):
        orchestrator = define_orchestrator("logged", ["echoA", "echoB"], enable_secondary_logging=True)

        envelope = await run_orchestrator(orchestrator, BASE_INPUT, invoker, secondary_log)
        await secondary_log.drain()

        records = recording_sink.records
        assert (records[0].task_name, records[0].status) == ("orchestrator_execution", "started")
        assert (records[-1].task_name, records[-1].status) == ("orchestrator_execution", "completed")
        assert all(record.task_category == "orchestrator_execution" for record in records)
        assert all(record.job_id == envelope["job"]["runId"] for record in records)
        completed_branches = {
            record.attributes["taskName"]
            for record in records
            if record.task_name == "task_execution" and record.status == "completed"
        }
        assert completed_branches == {"echoA", "echoB"}

    @pytest.mark.asyncio
    async def test_nested_track_logging_follows_track_flag(self, invoker, secondary_log, recording_sink):
        pipeline = define_track("pipeline", ["A"], enable_secondary_logging=True)
        orchestrator = define_orchestrator("quiet", [pipeline])

        await run_orchestrator(orchestrator, BASE_INPUT, invoker, secondary_log)
        await secondary_log.drain()

        assert recording_sink.records
        assert {record.task_category for record in recording_sink.records} == {"track_execution"}
        assert {record.task for record in recording_sink.records} == {"pipeline"}
