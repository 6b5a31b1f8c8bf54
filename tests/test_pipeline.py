import pytest
from fastapi import FastAPI

from natours.utils.middleware import BodyParserMiddleware, RawBodyMiddleware, RequestTimeMiddleware
from natours.utils.pipeline import EdgePipeline, PipelineOrderError, Stage, build_edge_pipeline
from tests.factories import make_settings

EXPECTED_ORDER = [
    "cors",
    "error_boundary",
    "static",
    "security_headers",
    "request_logging",
    "rate_limit",
    "raw_body",
    "body_parser",
    "sanitize",
    "compression",
    "request_time",
]


def test_pipeline_declares_stages_in_request_order():
    pipeline = build_edge_pipeline(make_settings())
    assert pipeline.names == EXPECTED_ORDER


def test_request_logging_only_in_development():
    assert "request_logging" in build_edge_pipeline(make_settings()).active_names
    assert "request_logging" not in build_edge_pipeline(make_settings(node_env="production")).active_names


def test_install_makes_first_stage_outermost():
    pipeline = build_edge_pipeline(make_settings())
    app = FastAPI()

    pipeline.install(app)

    installed = [middleware.cls for middleware in app.user_middleware]
    expected = [stage.middleware for stage in pipeline.stages if stage.enabled]
    assert installed == expected


def test_body_parser_before_raw_body_is_rejected():
    with pytest.raises(PipelineOrderError, match="must come after 'raw_body'"):
        EdgePipeline(
            [
                Stage("body_parser", BodyParserMiddleware, after=("raw_body",)),
                Stage("raw_body", RawBodyMiddleware),
            ]
        )


def test_missing_required_stage_is_rejected():
    with pytest.raises(PipelineOrderError, match="requires missing stage 'raw_body'"):
        EdgePipeline([Stage("body_parser", BodyParserMiddleware, after=("raw_body",))])


def test_before_constraint_is_enforced():
    with pytest.raises(PipelineOrderError, match="must come before 'body_parser'"):
        EdgePipeline(
            [
                Stage("body_parser", BodyParserMiddleware),
                Stage("cors", RequestTimeMiddleware, before=("body_parser",)),
            ]
        )


def test_duplicate_stage_names_are_rejected():
    with pytest.raises(PipelineOrderError, match="Duplicate"):
        EdgePipeline([Stage("request_time", RequestTimeMiddleware), Stage("request_time", RequestTimeMiddleware)])


def test_disabled_stage_still_counts_for_ordering():
    pipeline = EdgePipeline(
        [
            Stage("raw_body", RawBodyMiddleware, enabled=False),
            Stage("body_parser", BodyParserMiddleware, after=("raw_body",)),
        ]
    )
    assert pipeline.active_names == ["body_parser"]
