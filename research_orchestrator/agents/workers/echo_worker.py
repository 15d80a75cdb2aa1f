"""
Echo worker - the smallest useful worker type.

Reads its resolved dependencies, optionally sleeps ``delay_sec``, then
publishes ``{"message", "inputs"}`` to shared memory under ``output_key``
and records a final ``echo`` artifact with the same content.
"""

import asyncio

from research_orchestrator.agents.base_agent import BaseAgent
from research_orchestrator.agents.models import ArtifactStatus


class EchoWorker(BaseAgent):
    """Echoes its query and dependency values back into the session."""

    agent_type = "echo"

    def validate_configuration(self) -> None:
        super().validate_configuration()
        if float(self.config.get("delay_sec", 0)) < 0:
            raise ValueError("delay_sec must not be negative")

    async def perform_work(self) -> None:
        await self.update_progress(10, "Collecting inputs")
        inputs = {key: entry.value for key, entry in self.dependency_results.items()}

        delay = float(self.config.get("delay_sec", 0))
        if delay:
            await asyncio.sleep(delay)
        if not await self.checkpoint():
            return

        payload = {
            "message": self.config.get("message") or self.config.get("query", ""),
            "inputs": inputs,
        }
        output_key = self.config.get("output_key", self.agent_type)

        await self.update_progress(60, "Publishing output")
        await self.store_shared_memory(output_key, payload)
        artifact = await self.create_artifact("echo", payload, metadata={"output_key": output_key})
        await self.update_artifact(artifact["id"], status=ArtifactStatus.FINAL)
