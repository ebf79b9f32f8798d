"""
The embedding engine: registration surface, resolution pipeline and rendering.
"""

from __future__ import annotations

import copy
import inspect
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union
from urllib.parse import urlsplit, urlunsplit

import structlog
from structlog.contextvars import bound_contextvars

from .cache import MemoryCache, NullCache
from .compiler import compile_table
from .config import Config, load_whitelist, settings
from .domains import DOMAINS
from .imagesize import ImageSizeLoader, ImageSizeProbe
from .models import (
    CompiledTable,
    DomainRule,
    ExecutionContext,
    ImageDimensions,
    RenderResult,
    Response,
    ResultRecord,
    StepDescriptor,
)
from .observability.metrics import increment, observe
from .plugins import FETCHERS, MIXINS, MIXINS_AFTER
from .protocols import Cache, ImageProbe, RequestFn
from .registry import PluginRegistry, StepSpec
from .render import FormatSpec, RenderDispatcher
from .rules import DomainRuleTable, RuleSpec
from .templates import TEMPLATES
from .transport.http_client import HttpClient

logger = structlog.get_logger(__name__)


def sanitize_url(url: str) -> Optional[str]:
    """``url`` without userinfo, or ``None`` when it has no host."""
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError:
        return None
    if not host:
        return None
    netloc = parts.netloc.rpartition("@")[2]
    return urlunsplit(parts._replace(netloc=netloc))


class EmbedEngine:
    """Resolves content URLs into :class:`ResultRecord` objects and renders them.

    Args:
        config: Engine settings; the lazily loaded global settings when omitted.
        cache: Whole-record and image-size cache. Defaults to
            :class:`MemoryCache` when ``cache.memory_ttl_seconds`` is set,
            otherwise :class:`NullCache`.
        request: Transport capability. Defaults to an aiohttp
            :class:`HttpClient` built from ``config.request``.
        probe_image: Image dimension probe used by the ``image-size`` step.
        whitelist: Per-domain whitelist mapping; read from
            ``config.whitelist_file`` or the bundled file when omitted.
        enabled_providers: Overrides ``config.providers.enabled``.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        cache: Optional[Cache] = None,
        request: Optional[RequestFn] = None,
        probe_image: Optional[ImageProbe] = None,
        whitelist: Optional[Mapping[str, Any]] = None,
        enabled_providers: Union[bool, Sequence[str], None] = None,
    ) -> None:
        self.config = config if config is not None else settings
        if enabled_providers is None:
            enabled_providers = self.config.providers.enabled
        if not isinstance(enabled_providers, bool):
            enabled_providers = list(enabled_providers)

        self._table: Optional[CompiledTable] = None
        self.registry = PluginRegistry(on_change=self._invalidate)
        self.rules = DomainRuleTable(enabled_providers=enabled_providers, on_change=self._invalidate)

        if cache is None:
            ttl = self.config.cache.memory_ttl_seconds
            cache = MemoryCache(ttl_seconds=ttl) if ttl is not None else NullCache()
        self.cache = cache

        self._http: Optional[HttpClient] = None
        if request is None:
            self._http = HttpClient(self.config.request)
            request = self._http.request
        self._request = request

        if whitelist is None:
            whitelist = load_whitelist(self.config.whitelist_file)
        self.whitelist: Dict[str, Any] = dict(whitelist)

        self.templates = dict(TEMPLATES)
        self.aliases: Dict[str, List[str]] = copy.deepcopy(dict(self.config.render.aliases))
        self._renderer = RenderDispatcher(
            self.templates, self.aliases, desired_thumbnail_width=self.config.render.desired_thumbnail_width
        )

        probe = probe_image or ImageSizeProbe(lambda url: self.request(url))
        self._image_sizes = ImageSizeLoader(self.cache, probe, ttl_seconds=self.config.image_size.ttl_seconds)

        for fetcher in FETCHERS:
            self.add_fetcher(fetcher)
        for mixin in MIXINS:
            self.add_mixin(mixin)
        for mixin_after in MIXINS_AFTER:
            self.add_mixin_after(mixin_after)

        for domain in DOMAINS:
            self.add_domain(domain)

        if isinstance(enabled_providers, list):
            self.for_each_domain(lambda rule: setattr(rule, "enabled", False))
            for domain_id in enabled_providers:
                rule = self.rules.get(domain_id)
                if rule is None:
                    self.add_domain(domain_id)
                else:
                    rule.enabled = True

        logger.debug(
            "Engine initialized",
            fetchers=len(self.registry.fetchers),
            mixins=len(self.registry.mixins),
            mixins_after=len(self.registry.mixins_after),
            domains=len(self.rules),
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _invalidate(self) -> None:
        self._table = None

    def add_fetcher(self, spec: StepSpec) -> StepDescriptor:
        return self.registry.add_fetcher(spec)

    def add_mixin(self, spec: StepSpec) -> StepDescriptor:
        return self.registry.add_mixin(spec)

    def add_mixin_after(self, spec: StepSpec) -> StepDescriptor:
        return self.registry.add_mixin_after(spec)

    def add_domain(self, spec: RuleSpec) -> DomainRule:
        return self.rules.add(spec)

    def for_each_domain(self, fn: Callable[[DomainRule], Any]) -> None:
        self.rules.for_each(fn)

    def rule(self, domain_id: str) -> Optional[DomainRule]:
        return self.rules.get(domain_id)

    @property
    def compiled_table(self) -> CompiledTable:
        """The compiled rule table, rebuilt if anything changed since the last build."""
        table = self._table
        if table is None:
            table = compile_table(self.registry, self.rules)
            self._table = table
        return table

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def request(self, url: str, options: Optional[Mapping[str, Any]] = None) -> Response:
        """Perform an HTTP request through the configured transport.

        Replace this (on the instance) with something that always raises to
        force work from cache only.
        """
        return await self._request(url, options)

    async def load_image_size(self, url: str) -> Optional[ImageDimensions]:
        return await self._image_sizes(url)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def find_whitelist(self, domain_id: str) -> Optional[Dict[str, Any]]:
        for key in (domain_id, f"www.{domain_id}", f"*.{domain_id}"):
            entry = self.whitelist.get(key)
            if entry is not None:
                return entry
        return None

    async def resolve(self, url: str) -> Optional[ResultRecord]:
        """Resolve ``url`` into a :class:`ResultRecord`.

        Returns ``None`` for malformed URLs and URLs no enabled domain claims.
        Any error raised by a pipeline step or the cache propagates, and
        nothing is cached in that case.
        """
        src = sanitize_url(url) if isinstance(url, str) else None
        if src is None:
            logger.debug("Skipping malformed url", url=url)
            increment("resolve_total", labels={"outcome": "skipped"})
            return None

        with bound_contextvars(url=src):
            table = self.compiled_table
            domain_id = table.find_domain(src)
            if domain_id is None:
                logger.debug("No domain rule matches")
                increment("resolve_total", labels={"outcome": "skipped"})
                return None

            whitelist = self.find_whitelist(domain_id)

            cached = await self._guard("cache", "get", domain_id, self.cache.get(src))
            if isinstance(cached, Mapping) and cached.get("info"):
                logger.debug("Resolved from cache", domain=domain_id)
                increment("resolve_total", labels={"outcome": "cached"})
                return ResultRecord.model_validate(cached["info"])

            rule = self.rules.get(domain_id)
            env = ExecutionContext(
                src=src,
                result=ResultRecord(src=src, domain=domain_id),
                engine=self,
                whitelist=whitelist,
                config=rule.config if rule is not None else {},
            )

            entry = table.domains[domain_id]
            await self._run_phase("fetch", entry.fetchers, env)
            await self._run_phase("mixin", entry.mixins, env)
            await self._run_phase("mixin_after", entry.mixins_after, env)

            await self._store(domain_id, src, env.result)

            logger.debug("Resolved", domain=domain_id, snippets=len(env.result.snippets))
            increment("resolve_total", labels={"outcome": "resolved"})
            return env.result

    async def _run_phase(self, phase: str, steps: Sequence[StepDescriptor], env: ExecutionContext) -> None:
        start = time.perf_counter()
        for step in steps:
            result = self._guard_call(phase, step, env)
            if inspect.isawaitable(result):
                await self._guard(phase, step.name, env.result.domain, result)
        observe("step_duration_seconds", time.perf_counter() - start, labels={"phase": phase})
        logger.debug("Phase finished", phase=phase, steps=len(steps))

    def _guard_call(self, phase: str, step: StepDescriptor, env: ExecutionContext) -> Any:
        try:
            return step.handler(env)
        except Exception as e:
            self._report_failure(phase, step.name, env.result.domain, e)
            raise

    async def _guard(self, phase: str, step: str, domain_id: str, awaitable: Any) -> Any:
        try:
            return await awaitable
        except Exception as e:
            self._report_failure(phase, step, domain_id, e)
            raise

    def _report_failure(self, phase: str, step: str, domain_id: str, error: Exception) -> None:
        logger.warning("Pipeline step failed", phase=phase, step=step, domain=domain_id, error=repr(error))
        increment("resolve_total", labels={"outcome": "failed"})

    async def _store(self, domain_id: str, src: str, result: ResultRecord) -> None:
        value = {"info": result.model_dump(), "ts": int(time.time() * 1000)}
        if self.config.cache.fail_on_write_error:
            await self._guard("cache", "set", domain_id, self.cache.set(src, value))
            return

        try:
            await self.cache.set(src, value)
        except Exception as e:
            logger.warning("Cache write failed, returning uncached result", domain=domain_id, error=repr(e))

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    async def render(
        self,
        url_or_record: Union[str, ResultRecord, Mapping[str, Any], None],
        formats: FormatSpec = None,
    ) -> Optional[RenderResult]:
        """Render a URL or an already resolved record.

        ``formats`` is a format name or a priority list of names; aliases such
        as ``"block"`` expand in place. The returned ``type`` is the alias when
        the matching format came from one.
        """
        if url_or_record is None:
            return None

        if isinstance(url_or_record, ResultRecord):
            record: Optional[ResultRecord] = url_or_record
        elif isinstance(url_or_record, Mapping):
            record = ResultRecord.model_validate(url_or_record)
        elif isinstance(url_or_record, str):
            record = await self.resolve(url_or_record)
        else:
            raise TypeError(f"Cannot render {type(url_or_record).__name__}")

        if record is None:
            return None
        return self._renderer.render(record, formats)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        if self._http is not None:
            await self._http.close()

    async def __aenter__(self) -> "EmbedEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
