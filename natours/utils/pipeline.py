"""Edge pipeline: the ordered, named middleware stages every request crosses.

Stages are declared in the order a request meets them. Each stage may name
stages that must come before it (``after``) or after it (``before``); the
pipeline refuses to build when a declaration is violated, so the raw-body
capture for the payment webhook can never end up behind the body parser.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence, Tuple

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

from natours.config import Settings
from natours.utils.middleware import (
    BodyParserMiddleware,
    ErrorBoundaryMiddleware,
    RateLimitMiddleware,
    RawBodyMiddleware,
    RequestLoggingMiddleware,
    RequestTimeMiddleware,
    SanitizeMiddleware,
    SecurityHeadersMiddleware,
    StaticAssetsMiddleware,
)
from natours.utils.templating import PUBLIC_DIR

WEBHOOK_PATHS = ("/webhook-checkout",)

QUERY_WHITELIST = (
    "duration",
    "ratingsQuantity",
    "ratingsAverage",
    "maxGroupSize",
    "difficulty",
    "price",
)


class PipelineOrderError(ValueError):
    pass


@dataclass(frozen=True)
class Stage:
    name: str
    middleware: Callable
    options: Dict[str, Any] = field(default_factory=dict)
    after: Tuple[str, ...] = ()
    before: Tuple[str, ...] = ()
    enabled: bool = True


class EdgePipeline:
    def __init__(self, stages: Sequence[Stage]):
        self.stages: List[Stage] = list(stages)
        self.validate()

    @property
    def names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    @property
    def active_names(self) -> List[str]:
        return [stage.name for stage in self.stages if stage.enabled]

    def validate(self):
        position = {}
        for index, stage in enumerate(self.stages):
            if stage.name in position:
                raise PipelineOrderError(f"Duplicate pipeline stage '{stage.name}'")
            position[stage.name] = index

        for stage in self.stages:
            for required in stage.after:
                if required not in position:
                    raise PipelineOrderError(f"Stage '{stage.name}' requires missing stage '{required}'")
                if position[required] > position[stage.name]:
                    raise PipelineOrderError(f"Stage '{stage.name}' must come after '{required}'")
            for follower in stage.before:
                if follower in position and position[follower] < position[stage.name]:
                    raise PipelineOrderError(f"Stage '{stage.name}' must come before '{follower}'")

    def install(self, app: FastAPI):
        # add_middleware wraps the current stack, so the first stage goes in last.
        for stage in reversed(self.stages):
            if stage.enabled:
                app.add_middleware(stage.middleware, **stage.options)


def build_edge_pipeline(settings: Settings) -> EdgePipeline:
    return EdgePipeline(
        [
            Stage(
                "cors",
                CORSMiddleware,
                {
                    "allow_origins": settings.cors_origins,
                    "allow_methods": ["*"],
                    "allow_headers": ["*"],
                },
                before=("rate_limit", "body_parser"),
            ),
            Stage("error_boundary", ErrorBoundaryMiddleware, after=("cors",)),
            Stage("static", StaticAssetsMiddleware, {"directory": PUBLIC_DIR}),
            Stage("security_headers", SecurityHeadersMiddleware),
            Stage("request_logging", RequestLoggingMiddleware, enabled=settings.is_development),
            Stage(
                "rate_limit",
                RateLimitMiddleware,
                {
                    "max_requests": settings.rate_limit_max,
                    "window_seconds": settings.rate_limit_window_seconds,
                    "prefix": "/api",
                    "trust_proxy": settings.is_production,
                },
            ),
            Stage("raw_body", RawBodyMiddleware, {"paths": WEBHOOK_PATHS}),
            Stage(
                "body_parser",
                BodyParserMiddleware,
                {"limit": 10 * 1024},
                after=("raw_body", "rate_limit"),
            ),
            Stage("sanitize", SanitizeMiddleware, {"whitelist": QUERY_WHITELIST}, after=("body_parser",)),
            Stage("compression", GZipMiddleware, {"minimum_size": 1000}),
            Stage("request_time", RequestTimeMiddleware),
        ]
    )
