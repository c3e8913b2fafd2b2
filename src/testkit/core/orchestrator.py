"""Execution of one test document.

The orchestrator drives every step of a plan through resolution,
dispatch, evaluation and capture, in document order, and aggregates
the step verdicts into a file verdict.

Every run ends in one of the terminal states:

    step i -> step i + 1 -> ... -> completed
           -> failed     (fatal error of step i)
           -> cancelled  (cancellation requested before step i + 1)

Assertion failures are recorded and the run moves on to the next step.
Parse errors, resolution errors and request errors are fatal, as are
transport errors of non-optional steps: the remaining steps are
reported as not attempted.
"""

from asyncio import sleep
from logging import getLogger
from time import perf_counter
from typing import TYPE_CHECKING

from pydantic import ValidationError

from testkit.errors import (
    AssertionFailure,
    CancellationError,
    ParseError,
    RequestError,
    ResolutionError,
    TestkitError,
    TransportError,
)
from testkit.settings import RunnerSettings

from .evaluator import AssertionEvaluator, capture
from .executor import RequestExecutor
from .lookups import MISSING
from .parser import DocumentParser
from .verdicts import FileVerdict, RunState, StepStatus, StepVerdict

if TYPE_CHECKING:
    from asyncio import Event

if TYPE_CHECKING:
    from testkit.context import TestContext
    from testkit.schema import Assertion, Plan, Step
    from testkit.values import Value

    from .resolver import VariableResolver
    from .verdicts import RequestSnapshot, ResponseSnapshot

logger = getLogger(__name__)


class PlanRunner:
    """Executable runtime of a parsed plan.

    A runner is bound to one context. It owns no network resources:
    requests go through the executor it was given.
    """

    __test__ = False

    def __init__(self, context: 'TestContext', executor: RequestExecutor, *,
                 settings: RunnerSettings,
                 evaluator: AssertionEvaluator | None = None,
                 cancel: 'Event | None' = None) -> None:
        """Initialize the runner.

        Args:
            context: Context of the document to run.
            executor: Request executor.
            settings: Runner settings.
            evaluator: Assertion evaluator.
            cancel: Event that requests cooperative cancellation.
        """
        self.context = context
        self.executor = executor
        self.settings = settings
        self.evaluator = evaluator or AssertionEvaluator()
        self.cancel = cancel

    @property
    def filename(self) -> str:
        """Identifier of the running document."""
        return self.context.file

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self.cancel is not None and self.cancel.is_set()

    def bind_initial(self, plan: 'Plan') -> None:
        """Bind the environment inputs and the document variables.

        Document variables are resolved in declaration order, so each
        one may reference `envs` and the variables declared before it.

        Raises:
            ResolutionError: If the environment is incomplete or
                a variable references an unbound name.
        """
        variables = self.context.variables

        if environment := plan.resolve_environment():
            variables.bind({'envs': environment})

        for name, value in plan.variables.items():
            try:
                variables.bind({name: variables.resolver().resolve(value)})
            except ResolutionError as error:
                raise error.with_context(filename=self.filename, key=f'vars.{name}')

    async def run_plan(self) -> FileVerdict:
        """Execute the parsed plan of the context.

        Returns:
            File verdict. The step verdicts are also accumulated in
            the context as they are produced.
        """
        plan = self.context.plan
        if plan is None:
            raise RuntimeError('Plan is not parsed')

        logger.info('Running %s (%d steps)', self.filename, len(plan.steps))

        error: TestkitError | None = None
        try:
            self.bind_initial(plan)
        except ResolutionError as base:
            error = base

        for index, step in enumerate(plan.steps):
            if error is not None:
                break

            if self.cancelled:
                error = self.cancellation(index)
                break

            verdict, error = await self.run_step(index, step)
            self.context.verdicts.append(verdict)
            self.context.variables.bind(verdict.captured)
            self.log_step(verdict)

            if error is not None and step.optional and isinstance(error, TransportError):
                error = None
            elif error is None and verdict.status is StepStatus.FAILED and self.settings.fail_fast:
                error = AssertionFailure(
                    f'Step "{verdict.name}" failed: {verdict.diagnostic}',
                    results=verdict.failures,
                    context={'filename': self.filename, 'step_num': index},
                )

        for index, step in enumerate(plan.steps[len(self.context.verdicts):],
                                     start=len(self.context.verdicts)):
            self.context.verdicts.append(StepVerdict(
                index=index,
                name=step.label,
                status=StepStatus.NOT_ATTEMPTED,
                optional=step.optional,
            ))

        return self.make_verdict(error)

    def cancellation(self, index: int) -> CancellationError:
        """Build the error ending a run cancelled before a step or attempt."""
        return CancellationError('Run cancelled', context={
            'filename': self.filename,
            'step_num': index,
        })

    def make_verdict(self, error: TestkitError | None = None) -> FileVerdict:
        """Aggregate the accumulated step verdicts."""
        state = RunState.COMPLETED
        if isinstance(error, CancellationError):
            state = RunState.CANCELLED
        elif error is not None:
            state = RunState.FAILED

        plan = self.context.plan
        return FileVerdict(
            file=self.filename,
            state=state,
            title=plan.title if plan else None,
            steps=tuple(self.context.verdicts),
            diagnostic=str(error) if error else None,
            error_kind=error.kind if error else None,
            error=error,
        )

    async def run_step(self, index: int,
                       step: 'Step') -> tuple[StepVerdict, TestkitError | None]:
        """Execute a step, honouring its retry directive.

        A step is executed again while it errors with a transport
        failure or fails its assertions, up to the configured number
        of attempts. Resolution errors and request errors are never
        retried.

        A cancellation requested before a retry ends the step with the
        verdict of the last attempt and a cancellation error.

        Args:
            index: Position of the step in the plan.
            step: Step to execute.

        Returns:
            Verdict of the last attempt and its fatal error, if any.
        """
        attempts = step.retry.attempts if step.retry else 1
        delay = step.retry.delay if step.retry else 0.0

        verdict, error = await self.run_attempt(index, step, attempt=1)
        for attempt in range(2, attempts + 1):
            if verdict.passed:
                break
            if error is not None and not isinstance(error, TransportError):
                break
            if self.cancelled:
                return verdict, self.cancellation(index)

            logger.info('Retrying step %d of %s (attempt %d of %d)',
                        index + 1, self.filename, attempt, attempts)
            if delay:
                await sleep(delay)

            verdict, error = await self.run_attempt(index, step, attempt=attempt)

        return verdict, error

    async def run_attempt(self, index: int, step: 'Step', *,
                          attempt: int = 1) -> tuple[StepVerdict, TestkitError | None]:
        """Execute a single attempt of a step.

        Args:
            index: Position of the step in the plan.
            step: Step to execute.
            attempt: Attempt number, starting from one.

        Returns:
            Step verdict and the fatal error of the attempt, if any.
        """
        started = perf_counter()

        def elapsed() -> float:
            return (perf_counter() - started) * 1000

        verdict = {
            'index': index,
            'name': step.label,
            'attempts': attempt,
            'optional': step.optional,
        }
        resolver = self.context.variables.resolver()

        try:
            request = resolver.resolve_request(step.request)
        except ResolutionError as error:
            return self.fail_step(verdict, error, step, index, elapsed())

        try:
            response = await self.executor.send(
                request,
                timeout=step.timeout or self.settings.timeout,
            )
        except RequestError as error:
            return self.fail_step({**verdict, 'request': request},
                                  error, step, index, elapsed())

        verdict.update(request=request, response=response)

        try:
            assertions = self.run_resolutions(step, resolver.with_request(request), index)
        except ResolutionError as error:
            return self.fail_step(verdict, error, step, index, elapsed())

        results = self.evaluator.evaluate(assertions, response)
        captured, missing = self.run_captures(step, response)

        diagnostics = [
            item.message or item.label
            for item in results
            if not item.passed
        ]
        diagnostics.extend(
            f'capture "{name}" source "{step.capture[name]}" not found'
            for name in missing
        )

        return StepVerdict(
            **verdict,
            status=StepStatus.FAILED if diagnostics else StepStatus.PASSED,
            assertions=results,
            captured=captured,
            diagnostic='; '.join(diagnostics) or None,
            elapsed_ms=elapsed(),
        ), None

    def run_resolutions(self, step: 'Step', resolver: 'VariableResolver',
                        index: int) -> list['Assertion']:
        """Resolve the placeholders of every assertion of a step.

        Raises:
            ResolutionError: If an assertion references an unbound name
                or becomes invalid after substitution.
        """
        assertions = []
        for check_num, assertion in enumerate(step.assertions):
            try:
                assertions.append(resolver.resolve_assertion(assertion))

            except ResolutionError as error:
                raise error.with_context(check_num=check_num)

            except ValidationError as base:
                raise ResolutionError(
                    'Assertion is invalid after substitution',
                    placeholder=assertion.label,
                    context={
                        'filename': self.filename,
                        'step_num': index,
                        'check_num': check_num,
                        'element': assertion.model_dump(exclude_unset=True),
                    },
                ) from base

        return assertions

    @staticmethod
    def run_captures(step: 'Step', response: 'ResponseSnapshot') -> tuple[dict[str, 'Value'], list[str]]:
        """Extract capture directives from a response.

        Returns:
            Captured values and the names whose source was not found.
        """
        captured: dict[str, Value] = {}
        missing: list[str] = []

        for name, source in step.capture.items():
            value = capture(response, source)
            if value is MISSING:
                missing.append(name)
            else:
                captured[name] = value

        return captured, missing

    def fail_step(self, verdict: dict[str, 'Value | RequestSnapshot'],
                  error: TestkitError, step: 'Step', index: int,
                  elapsed_ms: float) -> tuple[StepVerdict, TestkitError]:
        """Build the verdict of a step that could not be executed."""
        error.with_context(
            filename=self.filename,
            step_num=index,
            context=dict(self.context.variables),
            element=step.model_dump(mode='json', exclude_unset=True, exclude_none=True),
        )

        return StepVerdict(
            **verdict,
            status=StepStatus.ERROR,
            diagnostic=error.message,
            error_kind=error.kind,
            elapsed_ms=elapsed_ms,
        ), error

    def log_step(self, verdict: StepVerdict) -> None:
        """Log the outcome of an executed step."""
        match verdict.status:
            case StepStatus.PASSED:
                logger.info('Step %d "%s" passed in %.1f ms',
                            verdict.index + 1, verdict.name, verdict.elapsed_ms)
            case StepStatus.FAILED:
                logger.warning('Step %d "%s" failed: %s',
                               verdict.index + 1, verdict.name, verdict.diagnostic)
            case _:
                logger.error('Step %d "%s" errored: %s',
                             verdict.index + 1, verdict.name, verdict.diagnostic)


async def run(context: 'TestContext', *,
              settings: RunnerSettings | None = None,
              executor: RequestExecutor | None = None,
              cancel: 'Event | None' = None,
              raise_errors: bool = False,
              parser: DocumentParser | None = None) -> FileVerdict:
    """Run one test document.

    The context is reset first, so running it twice yields two
    independent verdicts.

    Args:
        context: Context of the document.
        settings: Runner settings; read from the environment if omitted.
        executor: Request executor; a private one is created and closed
            if omitted.
        cancel: Event that requests cooperative cancellation between
            steps and between retry attempts.
        raise_errors: If true, the fatal error of a failed run is raised
            after the verdict is stored on the context.
        parser: Document parser for a context that is not parsed yet.

    Returns:
        File verdict, also stored as `context.verdict`.

    Raises:
        TestkitError: The fatal error of a failed run, when
            `raise_errors` is set.
    """
    settings = settings or RunnerSettings()
    context.reset()

    try:
        context.parse(parser or DocumentParser())
    except ParseError as error:
        logger.error('Can not parse %s: %s', context.file, error.message)
        context.verdict = FileVerdict(
            file=context.file,
            state=RunState.FAILED,
            diagnostic=str(error),
            error_kind=error.kind,
            error=error,
        )
        if raise_errors:
            raise
        return context.verdict

    if executor is None:
        async with RequestExecutor(settings=settings) as owned:
            verdict = await PlanRunner(context, owned, settings=settings, cancel=cancel).run_plan()
    else:
        verdict = await PlanRunner(context, executor, settings=settings, cancel=cancel).run_plan()

    context.verdict = verdict
    logger.info('%s %s', context.file, verdict.outcome)

    if raise_errors and verdict.state is RunState.FAILED and verdict.error is not None:
        raise verdict.error

    return verdict
