from research_orchestrator.agents.workers.echo_worker import EchoWorker

__all__ = ["EchoWorker"]
