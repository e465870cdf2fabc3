"""
gaLt Bot - Main Entry Point
===========================

This is the main entry point for the bot. It:
1. Loads configuration
2. Builds the components (metrics, memory, model gateway, tools, agent)
3. Sets up Slack handlers
4. Starts the bot

Run with:
    python -m galt.main

Or after installing:
    galt
"""

import asyncio
import signal
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from galt.agent import Agent, ContextAssembler, ResponseFormatter, ToolExecutor
from galt.llm import ChatBackend, ModelGateway
from galt.memory import ConversationLog, LongTermMemory, MemoryManager
from galt.rag import EmbeddingGenerator, VectorStore
from galt.tools import build_default_registry
from galt.utils.config import Config, get_config
from galt.utils.logger import Logger
from galt.utils.metrics import MetricsRecorder, Pricing

main_logger = Logger("Main")


def build_memory(config: Config) -> MemoryManager:
    """Conversation log, plus the similarity layer when enabled."""
    log = ConversationLog(max_turns=config.memory.max_retained_turns)

    long_term = None
    if config.memory.enable_long_term:
        embeddings = EmbeddingGenerator(
            api_key=config.secondary.api_key,
            model=config.memory.embedding_model
        )
        store = VectorStore(storage_path=config.memory.directory / "vectors")
        long_term = LongTermMemory(embeddings, store)

    return MemoryManager(log, long_term)


def build_gateway(config: Config, scheduler: AsyncIOScheduler) -> ModelGateway:
    primary = ChatBackend(
        name=config.primary.name,
        api_key=config.primary.api_key,
        model=config.primary.model,
        base_url=config.primary.base_url,
    )
    secondary = ChatBackend(
        name=config.secondary.name,
        api_key=config.secondary.api_key,
        model=config.secondary.model,
        base_url=config.secondary.base_url,
    )
    return ModelGateway(
        primary,
        secondary,
        retryable_status_codes=config.failover.retryable_status_codes,
        cooldown_seconds=config.failover.cooldown_seconds,
        call_timeout=config.failover.model_timeout_seconds,
        scheduler=scheduler,
    )


async def main():
    """
    Main async entry point.

    Initializes all components and runs the bot.
    """
    main_logger.info("Starting gaLt Bot...")

    try:
        # 1. Load configuration
        # This validates that all required env vars are set
        main_logger.info("Loading configuration...")
        config = get_config()

        # 2. Metrics and memory
        main_logger.info("Initializing metrics and memory...")
        metrics = MetricsRecorder(config.metrics_dir)
        pricing = Pricing(
            input_per_million_usd=config.pricing.input_per_million_usd,
            output_per_million_usd=config.pricing.output_per_million_usd,
            image_cost_usd=config.pricing.image_cost_usd,
        )
        memory = build_memory(config)

        # 3. Model gateway; the scheduler runs its recovery probes
        main_logger.info("Setting up model gateway...")
        scheduler = AsyncIOScheduler()
        scheduler.start()
        gateway = build_gateway(config, scheduler)

        # 4. Tools and the agent
        main_logger.info("Creating agent...")
        registry = build_default_registry(config, metrics)
        executor = ToolExecutor(registry, metrics, tool_timeout=config.agent.tool_timeout_seconds)
        assembler = ContextAssembler(
            memory,
            recent_window=config.memory.recent_window,
            similarity_top_k=config.memory.similarity_top_k,
            similarity_timeout=config.memory.similarity_timeout_seconds,
        )
        agent = Agent(
            gateway,
            assembler,
            executor,
            registry,
            metrics=metrics,
            pricing=pricing,
            second_pass_context=config.agent.second_pass_context,
        )
        formatter = ResponseFormatter(
            max_segment_size=config.formatter.max_segment_size,
            max_segment_count=config.formatter.max_segment_count,
        )

        # 5. Slack app and handlers
        main_logger.info("Registering event handlers...")
        from galt.slack import create_slack_app, create_socket_handler, register_handlers
        app = create_slack_app(config.slack)
        register_handlers(app, agent, formatter, gateway, metrics)

        # 6. Start the Socket Mode handler
        main_logger.info("Starting Socket Mode connection...")
        handler = await create_socket_handler(app, config.slack)

        # Set up graceful shutdown
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(
                sig,
                lambda: asyncio.create_task(_shutdown(handler, scheduler, memory))
            )

        main_logger.info("gaLt Bot is running! Press Ctrl+C to stop.")
        await handler.start_async()

    except KeyboardInterrupt:
        main_logger.info("Received interrupt signal")
    except Exception as e:
        main_logger.error("Failed to start bot", e)
        sys.exit(1)


async def _shutdown(handler, scheduler: AsyncIOScheduler, memory: MemoryManager):
    """Stop the probe scheduler, finish pending indexing, close the socket."""
    main_logger.info("Shutting down...")

    scheduler.shutdown(wait=False)
    await memory.flush()
    await handler.close_async()

    main_logger.info("Shutdown complete")


def run():
    """
    Synchronous entry point.

    This is called when running with `galt` command.
    """
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
