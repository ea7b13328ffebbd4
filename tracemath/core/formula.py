# tracemath/core/formula.py
from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger

from .enums import Source
from .events import Event, EventKind, Subscription
from .exceptions import DependencyError, ExpressionError, OutOfRangeEvaluation, ParseError
from .expression import parse
from .graph import check_source
from .interpolation import UNDEFINED
from .scheduling import Debouncer, Scheduler

if TYPE_CHECKING:
    from .trace import Trace

COORDINATE_VARIABLE = "x"


class FormulaEngine:
    """
    Computes a Math trace's samples from an expression over other traces.

    The evaluation grid is the intersection of all source ranges with the
    finest average source step. Source updates are translated into a dirty
    index range of that grid; evaluation passes are debounced and each pass
    consumes the whole dirty range, then emits one change notification.
    """

    def __init__(self, trace: "Trace", scheduler: Scheduler, interval: float) -> None:
        self._trace = trace
        self.expression = ""
        self.sources: dict["Trace", str] = {}
        self._subscriptions: dict["Trace", Subscription] = {}
        self._debouncer = Debouncer(scheduler, interval, self.evaluate)
        self.update_begin = 0
        self.update_end = 0
        self.grid_stale = False
        self.reset_range()

    # ---- scheduling ----
    @property
    def last_evaluation(self) -> float:
        return self._debouncer.last_run

    @property
    def pending(self) -> tuple[int, int]:
        return self.update_begin, self.update_end

    @property
    def has_pending(self) -> bool:
        return self.update_begin < self.update_end

    @property
    def timer_armed(self) -> bool:
        return self._debouncer.armed

    @property
    def scheduler(self) -> Scheduler:
        return self._debouncer.scheduler

    def set_scheduler(self, scheduler: Scheduler, interval: float) -> None:
        armed = self._debouncer.armed
        self._debouncer.cancel()
        self._debouncer = Debouncer(scheduler, interval, self.evaluate)
        if armed:
            self._debouncer.request()

    def reset_range(self) -> None:
        self.update_begin = self._trace.samples.n
        self.update_end = 0

    def schedule(self, begin: int, end: int) -> None:
        if self._trace.source is not Source.MATH:
            return
        self.update_begin = min(self.update_begin, begin)
        self.update_end = max(self.update_end, end)
        self._debouncer.request()

    def schedule_all(self) -> None:
        self.schedule(0, self._trace.samples.n)

    def flush(self) -> None:
        """Evaluate the pending range now instead of waiting for the timer."""
        self._debouncer.flush()

    def cancel(self) -> None:
        self._debouncer.cancel()

    def resume(self) -> None:
        """Catch up on source changes that arrived while the trace was paused."""
        if self.grid_stale:
            self.grid_stale = False
            self.update_grid()
            self.schedule_all()
        elif self.has_pending:
            self.schedule(*self.pending)

    def _defer_while_paused(self) -> bool:
        # a paused trace keeps its last data, grid included
        if not self._trace.paused:
            return False
        self.grid_stale = True
        self.schedule_all()
        return True

    # ---- expression ----
    def set_expression(self, text: str) -> None:
        self.expression = text
        self.schedule_all()

    def is_valid(self) -> bool:
        """Expression compiles and only uses `x` and configured source variables."""
        try:
            expr = parse(self.expression)
        except ParseError:
            return False
        allowed = set(self.sources.values()) | {COORDINATE_VARIABLE}
        return expr.variables <= allowed

    # ---- sources ----
    def variable_of(self, source: "Trace") -> str | None:
        return self.sources.get(source)

    def add_source(self, source: "Trace", variable: str) -> bool:
        try:
            check_source(self._trace, source)
        except DependencyError as e:
            logger.warning("Rejected math source for '{}': {}", self._trace.name, e)
            return False
        self.sources[source] = variable
        if source not in self._subscriptions:
            self._subscriptions[source] = source.events.subscribe(
                self._on_source_event, (EventKind.DATA_CHANGED, EventKind.DELETED)
            )
        self.update_grid()
        self.schedule_all()
        return True

    def remove_source(self, source: "Trace") -> None:
        self.sources.pop(source, None)
        sub = self._subscriptions.pop(source, None)
        if sub is not None:
            source.events.unsubscribe(sub)

    def clear_sources(self) -> None:
        for source in list(self.sources):
            self.remove_source(source)

    def _on_source_event(self, event: Event) -> None:
        if event.kind is EventKind.DELETED:
            self.source_deleted(event.sender)
        else:
            self.source_changed(event.sender, event.begin, event.end)

    def source_deleted(self, source: "Trace") -> None:
        if source not in self.sources:
            return
        self.remove_source(source)
        self._trace._changed()
        if self._defer_while_paused():
            return
        self.update_grid()
        self.schedule_all()

    def source_changed(self, source: "Trace", begin: int, end: int) -> None:
        if self._defer_while_paused():
            return
        self.update_grid()
        store = self._trace.samples
        n_src = source.sample_count
        if end <= begin or n_src == 0 or store.n == 0:
            self.schedule_all()
            return
        # grid cells interpolating across a changed sample lie between its neighbours
        first = source.sample_at(max(0, min(begin, n_src) - 1)).x
        last = source.sample_at(min(end, n_src - 1)).x
        self.schedule(store.index_of(first), min(store.index_of(last) + 1, store.n))

    # ---- grid ----
    def update_grid(self) -> None:
        store = self._trace.samples
        if not self.sources:
            if store.n:
                store.clear()
                self.reset_range()
                self._trace.raw_samples_changed(0, 0)
            return

        start, stop, step = -math.inf, math.inf, math.inf
        for source in self.sources:
            lo, hi = source.min_x, source.max_x
            if lo is None:
                start, stop = math.inf, -math.inf
                continue
            start = max(start, lo)
            stop = min(stop, hi)
            n = source.sample_count
            if n > 1:
                step = min(step, (hi - lo) / (n - 1))

        if not (math.isfinite(start) and math.isfinite(stop)) or stop < start:
            samples = 0
        elif not math.isfinite(step) or step <= 0:
            samples = 1
        else:
            samples = int(round((stop - start) / step)) + 1

        def coordinate(i: int) -> float:
            return start + i * step if samples > 1 else start

        old_first, old_last = store.x_min, store.x_max
        new_first = coordinate(0) if samples else None
        new_last = coordinate(samples - 1) if samples else None
        if samples != store.n or new_first != old_first or new_last != old_last:
            store.resize_to(samples, coordinate)
            self.reset_range()
            if samples > 0:
                self.update_begin, self.update_end = 0, samples
            else:
                self._trace.raw_samples_changed(0, 0)

    # ---- evaluation ----
    def _check_bounds(self, begin: int, end: int) -> None:
        n = self._trace.samples.n
        if begin < 0 or begin >= n or end > n:
            raise OutOfRangeEvaluation(
                f"Not calculating math trace '{self._trace.name}', requested "
                f"[{begin}, {end}) but data is of size {n}"
            )

    def evaluate(self) -> None:
        trace = self._trace
        if trace.paused:
            # keep the dirty range for the next unpaused pass
            logger.debug("Math trace '{}' paused, evaluation deferred", trace.name)
            return
        begin, end = self.update_begin, self.update_end
        if begin >= end or not self.sources:
            self.reset_range()
            return
        store = trace.samples
        try:
            self._check_bounds(begin, end)
        except OutOfRangeEvaluation as e:
            logger.warning("{}", e)
            self.reset_range()
            return

        x = store.coordinates[begin:end]
        try:
            expr = parse(self.expression)
            bindings = {COORDINATE_VARIABLE: x}
            for source, variable in self.sources.items():
                bindings[variable] = source.interpolated_many(x)
            values = np.broadcast_to(np.asarray(expr.eval(bindings), dtype=np.complex128), x.shape)
        except (ExpressionError, ValueError) as e:
            values = np.full(x.shape, UNDEFINED, dtype=np.complex128)
            trace.set_error(str(e))
        else:
            trace.set_ok()
        store.write_range(begin, values)
        self.reset_range()
        trace.raw_samples_changed(begin, end)
