"""
Processing pipeline shared by every gate.

A gate is a ``GateDefinition``: where its configuration lives, which queue it
consumes and the evaluation step deciding the outcome. ``process_envelope``
runs one delivery of an envelope through config loading, rule evaluation and
outcome application, and takes care of rate limits and requeues.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Type

from gates.core.config import Settings
from gates.core.exceptions import ConfigParseError, FatalError, RateLimitError, RejectError
from gates.core.logging import get_logger
from gates.schemas.envelope import ProcessingEnvelope
from gates.services.policy.base import GatesConfiguration
from gates.services.processing.capabilities import GitHubCapabilities, WorkQueue
from gates.services.processing.run import Clock, GateRun, utc_now

logger = get_logger(__name__)

MISSING_CONFIG_FILE_MESSAGE = (
    "Sorry I'm rejecting this. I can't proceed, couldn't retrieve the config file {path}. "
    "Error: {error}"
)
CONFIG_PARSE_ERROR_MESSAGE = (
    "Sorry I'm rejecting this. The {path} file doesn't seem to be valid. "
    "Check if the YAML file is valid and it respect the configuration format. Error: {error}"
)


@dataclass(frozen=True)
class GateDefinition:
    """
    A gate.

    Attributes:
        name: Display name used in logs.
        queue_name: Work queue consumed by the gate.
        config_path: Path of the configuration file in the repository.
        configuration_type: Configuration model the file is loaded into.
        evaluate: Decides the outcome. May approve, reject, comment or raise
            ``RejectError``. Completing without a decision approves.
    """

    name: str
    queue_name: str
    config_path: Optional[str]
    configuration_type: Type[GatesConfiguration]
    evaluate: Callable[[GateRun], Awaitable[None]]


async def load_configuration(run: GateRun, gate: GateDefinition) -> Optional[GatesConfiguration]:
    """
    Fetch, parse and validate the gate configuration of the triggering repository.

    Raises:
        RejectError: The file is missing, unparsable or invalid.
        RateLimitError: GitHub rate limited the file download.
    """
    if gate.config_path is None:
        logger.debug("Not reading configuration file from GitHub")
        return None

    repository = run.repository
    logger.info("Loading %s for %s", gate.config_path, gate.name)

    try:
        config_file = await run.github.get_file(repository.owner, repository.name, gate.config_path)
    except (RateLimitError, FatalError):
        raise
    except Exception as e:
        logger.error("Error getting file: %s %s", e, type(e).__name__)
        raise RejectError(
            MISSING_CONFIG_FILE_MESSAGE.format(path=gate.config_path, error=e)
        ) from e

    logger.info(
        "Parsing %s@%s with %d bytes", gate.config_path, config_file.sha, config_file.size
    )
    try:
        configuration = gate.configuration_type.load(config_file.content)
    except ConfigParseError as e:
        logger.error("Error parsing yaml file. Error: %s", e)
        raise RejectError(CONFIG_PARSE_ERROR_MESSAGE.format(path=gate.config_path, error=e)) from e

    errors = configuration.validate_rules()
    if errors:
        raise RejectError(
            f"Config file [{gate.config_path}]({config_file.html_url}) is not valid:\n"
            f"{configuration.generate_markdown_error_list(errors)}"
        )
    return configuration


async def _evaluate(run: GateRun, gate: GateDefinition) -> None:
    """Load the configuration and run the gate rules, turning errors into a decision."""
    try:
        run.configuration = await load_configuration(run, gate)
        logger.info("Processing %s", gate.name)

        # A delayed envelope comes back later, rules run then
        if await run.try_apply_delay():
            return

        await gate.evaluate(run)
    except (RateLimitError, FatalError):
        raise
    except RejectError as e:
        logger.info("Received RejectError from %s", gate.name)
        await _reject_once(run, str(e))
        return
    except Exception as e:
        logger.exception(
            "Error unexpectedly received %s from %s with %s", type(e).__name__, gate.name, e
        )
        await _reject_once(run, str(e))
        return

    if run.outcome is None and not run.requeued:
        await run.approve()


async def _reject_once(run: GateRun, comment: str) -> None:
    if run.outcome is not None:
        logger.warning(
            "Outcome %s already decided, not rejecting with: %s", run.outcome.state.value, comment
        )
        return
    await run.reject(comment)


async def process_envelope(
    envelope: ProcessingEnvelope,
    gate: GateDefinition,
    *,
    github: GitHubCapabilities,
    queue: WorkQueue,
    settings: Settings,
    now: Clock = utc_now,
) -> GateRun:
    """
    Process one delivery of an envelope.

    An envelope carrying an outcome only gets that outcome applied; rules are
    never evaluated twice for the same deployment request. Rate limits park
    the envelope until the limit resets. ``FatalError`` drops it without a
    decision.

    Returns:
        The run, for inspection by callers and tests.
    """
    if envelope.remaining_tries is None:
        envelope = envelope.model_copy(update={"remaining_tries": settings.GATES_MAX_TRIES})

    run = GateRun(
        gate_name=gate.name,
        queue_name=gate.queue_name,
        envelope=envelope,
        github=github,
        queue=queue,
        settings=settings,
        now=now,
    )
    logger.info(
        "Starting %s Callback: %s Try: %d Has Outcome: %s",
        gate.name,
        run.payload.deployment_callback_url,
        envelope.try_number,
        envelope.outcome is not None,
    )

    try:
        if envelope.outcome is not None:
            logger.info(
                "Processing previous outcome %s with schedule %s",
                envelope.outcome.state.value,
                envelope.outcome.schedule,
            )
            await run.apply_outcome(envelope.outcome)
        else:
            await _evaluate(run, gate)
    except RateLimitError as e:
        await run.handle_rate_limiting("processing", e)
    except FatalError as e:
        logger.error(
            "Fatal %s. Giving up (envelope %s is removed from the queue).",
            e,
            envelope.id,
            exc_info=True,
        )

    logger.info(
        "Finished %s Callback: %s Env: %s Try: %d With Outcome=%s",
        gate.name,
        run.payload.deployment_callback_url,
        run.environment,
        envelope.try_number,
        run.outcome.state.value if run.outcome else None,
    )
    return run
