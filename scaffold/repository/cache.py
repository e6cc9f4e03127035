"""
Redis Cache Connector

Builds the Redis client used by the repository, validates it with a
bounded ping and instruments every dial, command and pipeline through an
ordered chain of hooks.

Hooks follow a chain-of-responsibility: the first registered hook is the
outermost wrapper and decides when to hand the command to the next one.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple

from opentelemetry import trace
from opentelemetry.trace import SpanKind
from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError

from ..core.config import Settings
from ..core.exceptions import CacheConnectionError, ConfigurationError


@dataclass
class CacheCommand:
    """One Redis command as seen by the hooks."""

    name: str
    args: Tuple[Any, ...]
    result: Any = None
    error: Optional[BaseException] = None


ProcessFunc = Callable[[CacheCommand], Awaitable[Any]]
PipelineFunc = Callable[[List[CacheCommand]], Awaitable[List[Any]]]


class CacheHook:
    """
    Base instrumentation hook. Every callback passes straight through.

    Subclasses override the callbacks they care about and must call
    ``call_next`` exactly once to keep the chain going.
    """

    async def on_dial(self, network: str, address: str) -> None:
        return None

    async def process(self, command: CacheCommand, call_next: ProcessFunc) -> Any:
        return await call_next(command)

    async def process_pipeline(
        self, commands: List[CacheCommand], call_next: PipelineFunc
    ) -> List[Any]:
        return await call_next(commands)


class HookChain:
    """Ordered list of hooks composed around each Redis operation."""

    def __init__(self, hooks: Iterable[CacheHook] = ()):
        self._hooks: List[CacheHook] = list(hooks)

    def __len__(self) -> int:
        return len(self._hooks)

    def add(self, hook: CacheHook) -> None:
        self._hooks.append(hook)

    async def dial(self, network: str, address: str) -> None:
        for hook in self._hooks:
            await hook.on_dial(network, address)

    def wrap_process(self, final: ProcessFunc) -> ProcessFunc:
        handler = final
        for hook in reversed(self._hooks):
            handler = _bind_process(hook, handler)
        return handler

    def wrap_pipeline(self, final: PipelineFunc) -> PipelineFunc:
        handler = final
        for hook in reversed(self._hooks):
            handler = _bind_pipeline(hook, handler)
        return handler

    async def on_connect(self, connection) -> None:
        """``redis_connect_func`` for the connection pool: dial hooks, then the handshake."""
        path = getattr(connection, "path", None)
        if path:
            await self.dial("unix", path)
        else:
            await self.dial("tcp", f"{connection.host}:{connection.port}")
        await connection.on_connect()


def _bind_process(hook: CacheHook, call_next: ProcessFunc) -> ProcessFunc:
    async def run(command: CacheCommand) -> Any:
        return await hook.process(command, call_next)

    return run


def _bind_pipeline(hook: CacheHook, call_next: PipelineFunc) -> PipelineFunc:
    async def run(commands: List[CacheCommand]) -> List[Any]:
        return await hook.process_pipeline(commands, call_next)

    return run


class LoggingTracingHook(CacheHook):
    """
    Default hook: logs every dial, command and pipeline.

    With a tracer, each command also gets a child span carrying the command
    name and arguments. A ``None`` reply (key not found) is not an error.
    """

    def __init__(self, logger, tracer: Optional[trace.Tracer] = None):
        self.logger = logger
        self.tracer = tracer

    async def on_dial(self, network: str, address: str) -> None:
        self.logger.debug("redis dial", network=network, addr=address)

    async def process(self, command: CacheCommand, call_next: ProcessFunc) -> Any:
        if self.tracer is None:
            self.logger.debug(
                "executing redis command", command=command.name, args=str(command.args)
            )
            try:
                return await call_next(command)
            except RedisError as e:
                self.logger.error("redis command failed", command=command.name, error=str(e))
                raise

        with self.tracer.start_as_current_span(
            command.name,
            kind=SpanKind.CLIENT,
            attributes={
                "redis.command": command.name,
                "redis.args": str(command.args),
            },
            record_exception=False,
        ) as span:
            try:
                return await call_next(command)
            except RedisError as e:
                span.record_exception(e)
                span.set_attribute("redis.error", str(e))
                self.logger.error("redis command failed", command=command.name, error=str(e))
                raise

    async def process_pipeline(
        self, commands: List[CacheCommand], call_next: PipelineFunc
    ) -> List[Any]:
        self.logger.debug("executing redis pipeline", pipeline_size=len(commands))

        try:
            return await call_next(commands)
        finally:
            for command in commands:
                if isinstance(command.error, RedisError):
                    self.logger.error(
                        "redis pipeline command failed",
                        command=command.name,
                        error=str(command.error),
                    )


class InstrumentedRedis(Redis):
    """Redis client that routes commands and pipelines through a HookChain."""

    hook_chain: Optional[HookChain] = None

    async def execute_command(self, *args, **options):
        if not self.hook_chain:
            return await super().execute_command(*args, **options)

        parent = super()

        async def _execute(command: CacheCommand) -> Any:
            try:
                command.result = await parent.execute_command(*command.args, **options)
            except RedisError as e:
                command.error = e
                raise
            return command.result

        command = CacheCommand(name=_command_name(args), args=args)
        return await self.hook_chain.wrap_process(_execute)(command)

    def pipeline(self, transaction: bool = True, shard_hint: Optional[str] = None):
        pipe = InstrumentedPipeline(
            self.connection_pool, self.response_callbacks, transaction, shard_hint
        )
        pipe.hook_chain = self.hook_chain
        return pipe


class InstrumentedPipeline(Pipeline):
    """Pipeline whose ``execute`` runs through the pipeline hooks."""

    hook_chain: Optional[HookChain] = None

    async def execute(self, raise_on_error: bool = True):
        if not self.hook_chain:
            return await super().execute(raise_on_error)

        parent = super()
        commands = [
            CacheCommand(name=_command_name(args), args=args)
            for args, _options in self.command_stack
        ]

        async def _execute(batch: List[CacheCommand]) -> List[Any]:
            results = await parent.execute(raise_on_error=False)
            for command, result in zip(batch, results):
                if isinstance(result, Exception):
                    command.error = result
                else:
                    command.result = result
            if raise_on_error:
                for result in results:
                    if isinstance(result, Exception):
                        raise result
            return results

        return await self.hook_chain.wrap_pipeline(_execute)(commands)


def _command_name(args: Tuple[Any, ...]) -> str:
    if not args:
        return ""
    name = args[0]
    if isinstance(name, bytes):
        name = name.decode()
    return str(name).lower()


class RedisCache:
    """
    Cache handle owned by the repository.

    Wraps the instrumented client; safe for concurrent use by in-flight
    requests.
    """

    def __init__(self, client: InstrumentedRedis, logger):
        self.client = client
        self.logger = logger
        self._closed = False

    @classmethod
    async def connect(
        cls,
        settings: Settings,
        logger,
        tracer: Optional[trace.Tracer] = None,
        hooks: Iterable[CacheHook] = (),
    ) -> "RedisCache":
        """
        Create and validate the Redis client.

        Args:
            settings: Application settings
            logger: Bound logger for the connector
            tracer: Tracer for per-command spans, if tracing is enabled
            hooks: Extra hooks registered after the default one

        Returns:
            Connected RedisCache

        Raises:
            ConfigurationError: If settings or logger is missing
            CacheConnectionError: If the URL is invalid or the ping fails
        """
        if settings is None or logger is None:
            raise ConfigurationError("config and logger must not be nil")

        chain = HookChain([LoggingTracingHook(logger, tracer), *hooks])

        try:
            client = InstrumentedRedis.from_url(
                settings.REDIS_URL, redis_connect_func=chain.on_connect
            )
        except ValueError as e:
            raise CacheConnectionError("invalid redis url", e)

        try:
            await asyncio.wait_for(client.ping(), timeout=settings.REDIS_PING_TIMEOUT)
        except Exception as e:
            await client.aclose()
            raise CacheConnectionError(f"redis connection failed: {e}", e)

        client.hook_chain = chain

        logger.info("redis service initialized successfully", hooks=len(chain))
        return cls(client, logger)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        """
        Close the Redis client. A second call is a no-op.

        Raises:
            RedisError: If the client fails to close
        """
        if self._closed:
            return

        try:
            await self.client.aclose()
        except Exception as e:
            self.logger.error("Error closing Redis connection", error=str(e))
            raise

        self._closed = True
        self.logger.info("Redis connection closed")
