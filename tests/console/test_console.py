#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

import asyncio
import json
from unittest import IsolatedAsyncioTestCase, TestCase

import httpx

from tunedeck.api.exceptions import ResponseError, TransportError
from tunedeck.api.models import DockerServer, JobStatus
from tunedeck.console import Console, filter_servers
from tunedeck.core.lifecycle import WatchState

from ..helpers import MockApi, fail, ok

TRAINING = "api/v1/unified_training"

TASKS = {
    "tasks": [
        {"task_id": "t-1", "task_name": "llama", "status": "running"},
        {"task_id": "t-2", "task_name": "mistral", "status": "completed"},
    ]
}

# Long enough for pollers never to tick by themselves in a test
MANUAL = 3600.0


def new_console(api: MockApi) -> Console:
    return Console(
        api.client(
            job_poll_interval=MANUAL,
            detail_poll_interval=MANUAL,
            logs_poll_interval=MANUAL,
            gpu_poll_interval=MANUAL,
            doc_task_poll_interval=MANUAL,
            docker_poll_interval=MANUAL,
        )
    )


class Gate:
    """Holds back a response until released."""

    def __init__(self, response):
        self.response = response
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, _request: httpx.Request):
        self.entered.set()
        await self.release.wait()
        return self.response


class ConsoleJobsTest(IsolatedAsyncioTestCase):
    async def test_refresh_jobs(self):
        api = MockApi({f"GET {TRAINING}/tasks": ok(TASKS)})
        console = new_console(api)
        self.assertTrue(await console.refresh_jobs())
        self.assertEqual(["t-1", "t-2"], [job.id for job in console.jobs.get()])
        self.assertEqual(1, console.jobs.version)

    async def test_refresh_jobs_failure_keeps_snapshot(self):
        responses = [ok(TASKS), fail(500, "Database is down")]
        api = MockApi({f"GET {TRAINING}/tasks": lambda _r: responses.pop(0)})
        console = new_console(api)
        await console.refresh_jobs()
        with self.assertLogs("tunedeck.console.console", level="WARNING"):
            self.assertFalse(await console.refresh_jobs())
        self.assertEqual(2, len(console.jobs.get()))
        self.assertIsInstance(console.jobs.error, ResponseError)
        self.assertEqual("Database is down", console.jobs.error.msg)

    async def test_stale_response_is_discarded(self):
        gate = Gate(httpx.Response(200, json=ok(TASKS)))
        api = MockApi({f"GET {TRAINING}/tasks": gate})
        console = new_console(api)
        console.start_job_polling(immediate=False)

        refresh = asyncio.ensure_future(console.refresh_jobs())
        await gate.entered.wait()
        console.stop_job_polling()
        gate.release.set()

        self.assertFalse(await refresh)
        self.assertEqual((), console.jobs.get())
        self.assertEqual(0, console.jobs.version)

    async def test_stale_failure_is_not_reported(self):
        gate = Gate(httpx.Response(503))
        api = MockApi({f"GET {TRAINING}/tasks": gate})
        console = new_console(api)
        console.start_job_polling(immediate=False)

        refresh = asyncio.ensure_future(console.refresh_jobs())
        await gate.entered.wait()
        console.stop_job_polling()
        gate.release.set()

        self.assertFalse(await refresh)
        self.assertIsNone(console.jobs.error)

    async def test_duplicate_refresh_is_suppressed(self):
        gate = Gate(httpx.Response(200, json=ok(TASKS)))
        api = MockApi({f"GET {TRAINING}/tasks": gate})
        console = new_console(api)

        first = asyncio.ensure_future(console.refresh_jobs())
        await gate.entered.wait()
        self.assertFalse(await console.refresh_jobs())
        gate.release.set()

        self.assertTrue(await first)
        self.assertEqual(1, api.count("GET", f"{TRAINING}/tasks"))

    async def test_job_polling(self):
        api = MockApi({f"GET {TRAINING}/tasks": ok(TASKS)})
        console = new_console(api)
        console.start_job_polling()
        await asyncio.sleep(0.05)
        await console.wait_idle()
        console.close()
        self.assertEqual(1, api.count("GET", f"{TRAINING}/tasks"))
        self.assertEqual(2, len(console.jobs.get()))

    async def test_stop_job(self):
        api = MockApi(
            {
                f"GET {TRAINING}/tasks": ok(TASKS),
                f"POST {TRAINING}/stop_training": ok(msg="Task stopping"),
            }
        )
        console = new_console(api)
        with self.assertLogs("tunedeck.console.console", level="INFO"):
            self.assertEqual("Task stopping", await console.stop_job("t-1"))
        self.assertEqual(1, api.count("GET", f"{TRAINING}/tasks"))
        self.assertEqual(2, len(console.jobs.get()))

    async def test_stop_job_failure(self):
        api = MockApi(
            {
                f"GET {TRAINING}/tasks": ok(TASKS),
                f"POST {TRAINING}/stop_training": fail(400, "Task is not running"),
            }
        )
        console = new_console(api)
        await console.refresh_jobs()
        with self.assertRaises(ResponseError) as cm:
            await console.stop_job("t-2")
        self.assertEqual("Task is not running", cm.exception.msg)
        self.assertEqual(1, api.count("GET", f"{TRAINING}/tasks"))
        self.assertEqual(1, console.jobs.version)

    async def test_delete_job(self):
        api = MockApi(
            {
                f"GET {TRAINING}/tasks": ok({"tasks": TASKS["tasks"][:1]}),
                f"DELETE {TRAINING}/tasks/t-2": ok(msg="Task deleted"),
                f"GET {TRAINING}/training_logs": ok({"logs": []}),
            }
        )
        console = new_console(api)
        await console.open_logs("t-2")
        self.assertEqual("Task deleted", await console.delete_job("t-2"))
        self.assertNotIn("t-2", console.logs)
        self.assertEqual(["t-1"], [job.id for job in console.jobs.get()])

    async def test_delete_job_while_poll_in_flight(self):
        gate = Gate(httpx.Response(200, json=ok(TASKS)))
        responses = [gate, ok({"tasks": TASKS["tasks"][:1]})]

        def list_tasks(request: httpx.Request):
            response = responses.pop(0)
            return response(request) if callable(response) else response

        api = MockApi(
            {
                f"GET {TRAINING}/tasks": list_tasks,
                f"DELETE {TRAINING}/tasks/t-2": ok(msg="Task deleted"),
            }
        )
        console = new_console(api)
        console.start_job_polling(immediate=False)

        poll = asyncio.ensure_future(console.refresh_jobs())
        await gate.entered.wait()
        self.assertEqual("Task deleted", await console.delete_job("t-2"))
        self.assertEqual(["t-1"], [job.id for job in console.jobs.get()])

        gate.release.set()
        self.assertFalse(await poll)
        self.assertEqual(["t-1"], [job.id for job in console.jobs.get()])
        self.assertEqual(2, api.count("GET", f"{TRAINING}/tasks"))
        console.close()


class ConsoleDetailsTest(IsolatedAsyncioTestCase):
    async def test_open_results_of_succeeded_job(self):
        api = MockApi(
            {
                f"GET {TRAINING}/tasks": ok(TASKS),
                f"GET {TRAINING}/tasks/t-2/loss_data": ok({"loss": [0.9, 0.4]}),
                f"GET {TRAINING}/tasks/t-2/eval_results": ok({"bleu": 0.42}),
            }
        )
        console = new_console(api)
        await console.refresh_jobs()
        watch = await console.open_results("t-2")
        self.assertEqual(WatchState.stopped, watch.state)
        self.assertEqual({"loss": [0.9, 0.4]}, watch.live_data)
        self.assertEqual({"bleu": 0.42}, watch.supplementary)
        self.assertEqual(0, api.count("GET", f"{TRAINING}/tasks/t-2"))

    async def test_open_results_of_running_job(self):
        api = MockApi(
            {
                f"GET {TRAINING}/tasks": ok(TASKS),
                f"GET {TRAINING}/tasks/t-1": ok(
                    {"task_id": "t-1", "status": "failed", "error_msg": "OOM"}
                ),
                f"GET {TRAINING}/tasks/t-1/loss_data": ok({"loss": [0.9]}),
            }
        )
        console = new_console(api)
        await console.refresh_jobs()
        watch = await console.open_results("t-1")
        self.assertEqual(WatchState.watching, watch.state)

        self.assertEqual(WatchState.stopped, await console.results.tick("t-1"))
        self.assertEqual(JobStatus.failed, watch.job.status)
        self.assertEqual("OOM", watch.job.error_message)
        self.assertEqual(0, api.count("GET", f"{TRAINING}/tasks/t-1/eval_results"))
        console.close_results("t-1")
        self.assertIsNone(console.results.get("t-1"))

    async def test_logs(self):
        api = MockApi({f"GET {TRAINING}/training_logs": ok({"logs": ["epoch 1"]})})
        console = new_console(api)
        self.assertEqual({"logs": ["epoch 1"]}, await console.open_logs("t-1"))
        self.assertTrue(await console.refresh_logs("t-1"))
        console.close_logs("t-1")
        self.assertNotIn("t-1", console.logs)
        self.assertFalse(await console.refresh_logs("t-1"))
        self.assertEqual(2, api.count("GET", f"{TRAINING}/training_logs"))

    async def test_logs_closed_while_in_flight(self):
        gate = Gate(httpx.Response(200, json=ok({"logs": ["epoch 1"]})))
        api = MockApi({f"GET {TRAINING}/training_logs": gate})
        console = new_console(api)

        opening = asyncio.ensure_future(console.open_logs("t-1"))
        await gate.entered.wait()
        console.close_logs("t-1")
        gate.release.set()

        self.assertIsNone(await opening)
        self.assertNotIn("t-1", console.logs)


class ConsoleResourcesTest(IsolatedAsyncioTestCase):
    async def test_doc_tasks(self):
        def list_doc_tasks(request: httpx.Request):
            page = json.loads(request.content)["page_num"]
            return ok(
                {
                    "list": [{"doc_id": f"d-{page}", "status": 1}],
                    "total": 15,
                }
            )

        api = MockApi({"POST api/v1/documents/list_doc_tasks": list_doc_tasks})
        console = new_console(api)
        console.watch_doc_tasks("kb-1")
        await asyncio.sleep(0.05)
        await console.wait_idle()
        remote_page = console.doc_tasks["kb-1"]
        self.assertEqual(1, remote_page.page)
        self.assertEqual(2, remote_page.total_pages)
        self.assertEqual(["d-1"], [job.id for job in remote_page.items])
        self.assertEqual(JobStatus.succeeded, remote_page.items[0].status)

        console.set_doc_tasks_page("kb-1", 2)
        await asyncio.sleep(0.05)
        await console.wait_idle()
        self.assertEqual(2, console.doc_tasks["kb-1"].page)

        console.unwatch_doc_tasks("kb-1")
        self.assertNotIn("kb-1", console.doc_tasks)
        self.assertFalse(await console.refresh_doc_tasks("kb-1"))

    async def test_devices(self):
        api = MockApi(
            {
                f"GET {TRAINING}/gpu/status": ok(
                    {"gpu_details": {"0": {"status": "free"}}}
                )
            }
        )
        console = new_console(api)
        self.assertTrue(await console.refresh_devices())
        self.assertEqual(["cpu", "cuda:0"], console.devices.device_ids())
        self.assertTrue(console.devices.is_available("cuda:0"))

    async def test_devices_failure(self):
        api = MockApi({f"GET {TRAINING}/gpu/status": httpx.Response(502)})
        console = new_console(api)
        with self.assertRaises(TransportError):
            await console.refresh_devices()
        self.assertIsNone(console.devices.snapshot)

    async def test_stale_devices_are_discarded(self):
        gate = Gate(
            httpx.Response(200, json=ok({"gpu_details": {"0": {"status": "free"}}}))
        )
        api = MockApi({f"GET {TRAINING}/gpu/status": gate})
        console = new_console(api)
        console.start_device_polling(immediate=False)

        refresh = asyncio.ensure_future(console.refresh_devices())
        await gate.entered.wait()
        console.stop_device_polling()
        gate.release.set()

        self.assertFalse(await refresh)
        self.assertIsNone(console.devices.snapshot)

    async def test_servers(self):
        api = MockApi(
            {
                "POST api/v1/docker_servers/list_all_docker_servers": ok(
                    {
                        "servers": [
                            {
                                "id": 1,
                                "server_name": "gpu-box",
                                "srv_base_url": "http://10.0.0.5:2375",
                            }
                        ]
                    }
                )
            }
        )
        console = new_console(api)
        self.assertTrue(await console.refresh_servers())
        self.assertEqual(["gpu-box"], [s.name for s in console.docker_servers])

    async def test_close(self):
        api = MockApi({f"GET {TRAINING}/tasks": ok(TASKS)})
        console = new_console(api)
        console.start_job_polling(immediate=False)
        console.start_device_polling(immediate=False)
        console.start_server_polling(immediate=False)
        console.close()
        await console.wait_idle()
        self.assertEqual([], api.requests)


class ConsoleRestartTest(IsolatedAsyncioTestCase):
    @staticmethod
    def new_api(device: str) -> MockApi:
        return MockApi(
            {
                f"GET {TRAINING}/tasks": ok(TASKS),
                f"GET {TRAINING}/tasks/t-2/restart_config": ok(
                    {"task_name": "mistral", "training_params": {"device": device}}
                ),
                f"GET {TRAINING}/gpu/status": ok(
                    {
                        "gpu_details": {
                            "0": {"status": "allocated"},
                            "1": {"status": "free"},
                        }
                    }
                ),
                f"POST {TRAINING}/start_training": ok(msg="Task created"),
            }
        )

    async def test_restart_on_previous_devices(self):
        api = self.new_api("cuda:1")
        console = new_console(api)
        config = await console.load_restart_config("t-2")
        self.assertEqual("mistral", config["task_name"])
        self.assertTrue(console.devices.restore_pending)

        await console.refresh_devices()
        self.assertEqual(("cuda:1",), console.devices.selection)

        message = await console.restart_job("t-2", {"train_type": "sft"})
        self.assertEqual("Task created", message)
        self.assertEqual(
            {"train_type": "sft", "device": "cuda:1", "base_task_id": "t-2"},
            json.loads(api.requests[2].content),
        )
        self.assertEqual(1, api.count("GET", f"{TRAINING}/tasks"))
        self.assertEqual(2, len(console.jobs.get()))

    async def test_restart_with_allocated_device(self):
        api = self.new_api("cuda:0,cuda:1")
        console = new_console(api)
        await console.refresh_devices()
        await console.load_restart_config("t-2")
        self.assertEqual((), console.devices.selection)

        with self.assertRaises(ValueError):
            await console.restart_job("t-2", {"train_type": "sft"})
        self.assertEqual(0, api.count("POST", f"{TRAINING}/start_training"))

        console.devices.toggle("cuda:1")
        await console.restart_job("t-2", {"train_type": "sft"})
        self.assertEqual(1, api.count("POST", f"{TRAINING}/start_training"))


class FilterServersTest(TestCase):
    def test_filter_servers(self):
        servers = [
            DockerServer(id="1", name="GPU-Box", base_url="http://10.0.0.5:2375"),
            DockerServer(id="2", name="cpu-box", base_url="http://10.0.0.6:2375"),
        ]
        self.assertEqual(["1"], [s.id for s in filter_servers(servers, "gpu")])
        self.assertEqual(["2"], [s.id for s in filter_servers(servers, "0.6")])
        self.assertEqual(["1", "2"], [s.id for s in filter_servers(servers, " ")])
        self.assertEqual(["1", "2"], [s.id for s in filter_servers(servers)])
