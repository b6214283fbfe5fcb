"""
The command pipeline.

A request passes through a fixed list of stages:

    authorize → rate_limit → login → dispatch

Each stage is a callable with a `name` attribute. It takes the PipelineState
and returns an updated one, or raises a SpeakeasyError. The first failure
stops the run and its user-facing message becomes the only reply. `help`
and empty commands never enter the pipeline.
"""

import random
from datetime import timedelta
from typing import Callable, List, Optional, Sequence

from speakeasy.auth import AuthorizeStage
from speakeasy.commands import NOT_UNDERSTOOD, DispatchStage, help_text, is_help, parse_command
from speakeasy.config import Config
from speakeasy.errors import SpeakeasyError
from speakeasy.lock_api import LockApiClient
from speakeasy.logger import get_logger
from speakeasy.login import LoginStage
from speakeasy.rate_limit import RateLimitStage, build_policy
from speakeasy.state import CommandRequest, PipelineState
from speakeasy.store import StoreClient

logger = get_logger("pipeline")

Stage = Callable[[PipelineState], PipelineState]


class Pipeline:
    def __init__(self, stages: Sequence[Stage], config: Config, help_message: str):
        self.stages: List[Stage] = list(stages)
        self._config = config
        self._help = help_message

    def run(self, state: PipelineState) -> PipelineState:
        """
        Fold the state through every stage, stopping at the first failure.
        """
        for stage in self.stages:
            try:
                state = stage(state)
            except SpeakeasyError as e:
                e.stage = stage.name
                raise
        return state

    def handle(self, request: CommandRequest, relay) -> None:
        """
        Run one request to completion and deliver every reply through `relay`.
        """
        if is_help(request.text):
            relay.send(self._help)
            return
        if not (request.text or "").split():
            relay.send(NOT_UNDERSTOOD)
            return

        command = parse_command(request.text, self._config.catalog, self._config.passes_enabled)
        state = PipelineState(request=request, command=command)

        try:
            state = self.run(state)
            for reply in state.replies:
                relay.send(reply)
        except SpeakeasyError as e:
            logger.warning(
                "pipeline.stage_failed",
                extra={
                    "stage": e.stage,
                    "error_code": e.code,
                    "detail": e.detail,
                    "user_id": request.user_id,
                    "command": command.operation,
                },
            )
            relay.send(e.user_message)
            return

        logger.info(
            "pipeline.completed",
            extra={"user_id": request.user_id, "command": command.operation},
        )


def help_message(config: Config) -> str:
    """
    Help text for this deployment. Needs only the config, never the store.
    """
    return help_text(
        config.catalog,
        build_policy(config).describe(),
        config.passes_enabled,
        config.pass_duration_hours,
    )


def build_pipeline(
    config: Config,
    store: StoreClient,
    lock_api: LockApiClient,
    clock=None,
    sleep=None,
    rng: Optional[random.Random] = None,
) -> Pipeline:
    policy = build_policy(config)
    stages = [
        AuthorizeStage(store, config.settings_table, config.users_table, config.auth_token_key),
        RateLimitStage(store, config.users_table, policy, clock=clock),
        LoginStage(store, lock_api, config.settings_table, config.logins_key, rng=rng),
        DispatchStage(
            store,
            lock_api,
            config.users_table,
            config.catalog,
            passes_enabled=config.passes_enabled,
            pass_capacity=config.pass_capacity,
            pass_duration=timedelta(hours=config.pass_duration_hours),
            compound_delay=config.compound_unlock_delay_seconds,
            clock=clock,
            sleep=sleep,
        ),
    ]
    return Pipeline(stages, config, help_message(config))
