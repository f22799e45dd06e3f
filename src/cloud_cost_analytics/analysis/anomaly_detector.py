"""
Cost Anomaly Detector - flags daily costs that deviate from a rolling baseline

Each (service or resource, provider, account) has its own BaselineWindow and
moves through NO_BASELINE -> WARMING_UP -> ACTIVE. Windows are immutable values
held in a caller-owned BaselineStore; the detector only exposes pure
evaluate/update functions plus a batch helper that reads and writes the store.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from ..config import AnomalyConfig
from ..diagnostics import Diagnostics
from ..exceptions import (
    InputDataError,
    InsufficientHistoryError,
    OutOfOrderObservationError
)
from ..models import BaselineKey, BaselineWindow, CostObservation, decimal_to_json
from ..utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)


class BaselineState(Enum):
    """Lifecycle of a baseline window"""
    NO_BASELINE = "no_baseline"
    WARMING_UP = "warming_up"
    ACTIVE = "active"


class Severity(Enum):
    """Anomaly severity"""
    MEDIUM = "medium"
    HIGH = "high"


class CheckStatus(Enum):
    """Outcome of comparing one observation to its baseline"""
    NORMAL = "normal"
    FLAGGED = "flagged"
    INSUFFICIENT_HISTORY = "insufficient_history"


@dataclass(frozen=True)
class ContributingSubject:
    """Another subject in the same account whose cost moved sharply on the anomaly day"""
    subject: str
    cost: Decimal
    change_percent: Decimal  # versus the previous day

    def to_dict(self) -> Dict[str, object]:
        return {
            'subject': self.subject,
            'cost': decimal_to_json(self.cost),
            'change_percent': decimal_to_json(self.change_percent)
        }


class BaselineStatistics(NamedTuple):
    mean: Decimal
    std_dev: Decimal
    spread: Decimal  # std_dev after the configured floor
    count: int


DailyCosts = Dict[Tuple[str, str], Dict[str, Dict[date, Decimal]]]


@dataclass(frozen=True)
class AnomalyFlag:
    """A cost observation that deviates significantly from its baseline"""
    subject: str
    provider_id: str
    account_id: str
    period: date
    observed_cost: Decimal
    baseline_mean: Decimal
    baseline_spread: Decimal
    deviation: Decimal
    severity: Severity
    direction: str  # 'increase' or 'decrease'
    variance_percent: Optional[Decimal]
    message: str
    contributing_subjects: Tuple[ContributingSubject, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            'subject': self.subject,
            'provider_id': self.provider_id,
            'account_id': self.account_id,
            'period': self.period.isoformat(),
            'observed_cost': decimal_to_json(self.observed_cost),
            'baseline_mean': decimal_to_json(self.baseline_mean),
            'baseline_spread': decimal_to_json(self.baseline_spread),
            'deviation': decimal_to_json(self.deviation),
            'severity': self.severity.value,
            'direction': self.direction,
            'variance_percent': decimal_to_json(self.variance_percent),
            'message': self.message,
            'contributing_subjects': [c.to_dict() for c in self.contributing_subjects]
        }


@dataclass(frozen=True)
class AnomalyCheck:
    """Result of evaluating one observation"""
    key: BaselineKey
    day: date
    observed_cost: Decimal
    state: BaselineState
    status: CheckStatus
    baseline_mean: Optional[Decimal] = None
    deviation: Optional[Decimal] = None
    flag: Optional[AnomalyFlag] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            'subject': self.key.subject,
            'provider_id': self.key.provider_id,
            'account_id': self.key.account_id,
            'day': self.day.isoformat(),
            'observed_cost': decimal_to_json(self.observed_cost),
            'state': self.state.value,
            'status': self.status.value,
            'baseline_mean': decimal_to_json(self.baseline_mean),
            'deviation': decimal_to_json(self.deviation)
        }


class BaselineStore:
    """Keyed set of baseline windows, owned and persisted by the caller"""

    def __init__(self, windows: Optional[Iterable[BaselineWindow]] = None):
        self._windows: Dict[BaselineKey, BaselineWindow] = {}
        for window in windows or []:
            self.put(window)

    def get(self, key: BaselineKey) -> Optional[BaselineWindow]:
        return self._windows.get(key)

    def put(self, window: BaselineWindow):
        self._windows[window.key] = window

    def keys(self) -> List[BaselineKey]:
        return sorted(self._windows)

    def __contains__(self, key: BaselineKey) -> bool:
        return key in self._windows

    def __len__(self) -> int:
        return len(self._windows)

    def __iter__(self) -> Iterator[BaselineWindow]:
        return (self._windows[key] for key in self.keys())

    def to_dict(self) -> Dict[str, object]:
        return {'windows': [window.to_dict() for window in self]}

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> 'BaselineStore':
        return cls(BaselineWindow.from_dict(item) for item in data.get('windows', []))


@dataclass
class AnomalyReport:
    """Flags and per-observation checks for one detection run"""
    flags: List[AnomalyFlag]
    checks: List[AnomalyCheck]
    diagnostics: Diagnostics

    @property
    def insufficient_history(self) -> List[AnomalyCheck]:
        return [c for c in self.checks if c.status == CheckStatus.INSUFFICIENT_HISTORY]

    def to_dict(self) -> Dict[str, object]:
        return {
            'flags': [f.to_dict() for f in self.flags],
            'checks': [c.to_dict() for c in self.checks],
            'diagnostics': self.diagnostics.to_dict()
        }


class CostAnomalyDetector:
    """Rolling-baseline z-score detector for daily costs"""

    SEVERITY_RANK = {Severity.HIGH: 2, Severity.MEDIUM: 1}

    def __init__(self, config: Optional[AnomalyConfig] = None):
        """
        Initialize Cost Anomaly Detector

        Args:
            config: Window length, minimum history and severity thresholds
        """
        self.config = config or AnomalyConfig()

    # Pure functions over a single window

    def state_of(self, window: Optional[BaselineWindow], as_of: Optional[date] = None) -> BaselineState:
        """State of a window when judging an observation made on ``as_of``"""
        if window is None:
            return BaselineState.NO_BASELINE
        as_of = as_of or window.last_updated
        elapsed_days = (as_of - window.first_observed).days
        if (elapsed_days >= self.config.min_history_days
                and len(self._trailing(window.observations, as_of)) >= self.config.min_observations):
            return BaselineState.ACTIVE
        return BaselineState.WARMING_UP

    def baseline_statistics(self, window: BaselineWindow, as_of: date) -> BaselineStatistics:
        """
        Mean and spread of the observations strictly before ``as_of`` inside the window

        Raises:
            InsufficientHistoryError: when the window cannot support a baseline yet
        """
        elapsed_days = (as_of - window.first_observed).days
        values = [cost for _, cost in self._trailing(window.observations, as_of)]
        if elapsed_days < self.config.min_history_days or len(values) < self.config.min_observations:
            raise InsufficientHistoryError(
                f"Baseline for {window.key} has {len(values)} observations over {elapsed_days} days",
                subject=str(window.key),
                observed_days=elapsed_days,
                required_days=self.config.min_history_days)

        mean, std_dev = self._mean_and_std(values)
        spread = max(std_dev, abs(mean) * self.config.spread_floor_ratio, self.config.min_spread)
        return BaselineStatistics(mean=mean, std_dev=std_dev, spread=spread, count=len(values))

    def evaluate(self, window: Optional[BaselineWindow], observation: CostObservation) -> AnomalyCheck:
        """
        Compare an observation to the baseline built from earlier observations only

        Args:
            window: Current baseline for the observation's key (None = never seen)
            observation: Cost to evaluate

        Returns:
            AnomalyCheck carrying an AnomalyFlag when the deviation crosses a threshold
        """
        if window is not None and window.key != observation.key:
            raise InputDataError(f"Observation for {observation.key} evaluated against {window.key}",
                                 subject=observation.subject, record=observation)
        self._require_finite(observation)

        state = self.state_of(window, observation.day)
        if state != BaselineState.ACTIVE:
            return AnomalyCheck(observation.key, observation.day, observation.cost,
                                state, CheckStatus.INSUFFICIENT_HISTORY)

        try:
            stats = self.baseline_statistics(window, observation.day)
        except InsufficientHistoryError:
            return AnomalyCheck(observation.key, observation.day, observation.cost,
                                BaselineState.WARMING_UP, CheckStatus.INSUFFICIENT_HISTORY)

        deviation = (observation.cost - stats.mean) / stats.spread
        severity = self._severity(deviation)
        flag = None
        if severity is not None:
            flag = self._build_flag(observation, stats, deviation, severity)

        return AnomalyCheck(
            key=observation.key,
            day=observation.day,
            observed_cost=observation.cost,
            state=state,
            status=CheckStatus.FLAGGED if flag else CheckStatus.NORMAL,
            baseline_mean=stats.mean,
            deviation=deviation,
            flag=flag
        )

    def update(self, window: Optional[BaselineWindow], observation: CostObservation) -> BaselineWindow:
        """
        Fold an observation into its window, returning a new window

        Replaying an observation that is already part of the window returns the
        window unchanged; anything older than the last update is rejected.
        """
        self._require_finite(observation)
        if window is None:
            return self._recompute(BaselineWindow(
                key=observation.key,
                first_observed=observation.day,
                last_updated=observation.day,
                observations=((observation.day, observation.cost),),
                window_length_days=self.config.window_days
            ))

        if window.key != observation.key:
            raise InputDataError(f"Observation for {observation.key} applied to {window.key}",
                                 subject=observation.subject, record=observation)

        if observation.day <= window.last_updated:
            if window.cost_on(observation.day) == observation.cost:
                return window
            raise OutOfOrderObservationError(
                f"Observation on {observation.day} for {observation.key} is not after "
                f"the last update on {window.last_updated}",
                subject=observation.subject, record=observation)

        observations = window.observations + ((observation.day, observation.cost),)
        cutoff = observation.day - timedelta(days=self.config.window_days)
        return self._recompute(replace(
            window,
            last_updated=observation.day,
            observations=tuple((d, c) for d, c in observations if d > cutoff),
            window_length_days=self.config.window_days
        ))

    def build_baseline(self, key: BaselineKey,
                       observations: Iterable[CostObservation]) -> Optional[BaselineWindow]:
        """Build a window from historical observations for one key"""
        matching = [o for o in observations if o.key == key]
        for observation in matching:
            self._require_finite(observation)

        window = None
        for observation in self._combine(matching):
            window = self.update(window, observation)
        return window

    # Batch helper over the caller's store

    @log_execution_time
    def detect(self, observations: Iterable[CostObservation], store: BaselineStore) -> AnomalyReport:
        """
        Evaluate then apply observations in day order, updating ``store`` in place

        Args:
            observations: Daily costs, several entries per key and day are summed
            store: Caller-owned baseline windows

        Returns:
            AnomalyReport with flags sorted by severity and deviation
        """
        diagnostics = Diagnostics('detect_anomalies')
        checks: List[AnomalyCheck] = []

        valid = []
        for observation in observations:
            try:
                self._require_finite(observation)
            except InputDataError as e:
                diagnostics.processed += 1
                diagnostics.record(e)
                continue
            valid.append(observation)
        combined = self._combine(valid)

        for observation in combined:
            diagnostics.processed += 1
            window = store.get(observation.key)
            try:
                if window is not None and observation.day <= window.last_updated:
                    # already applied (no-op) or out of order (raises)
                    self.update(window, observation)
                    logger.debug(f"Skipping replayed observation {observation.key} {observation.day}")
                    continue
                check = self.evaluate(window, observation)
                store.put(self.update(window, observation))
            except InputDataError as e:
                diagnostics.record(e)
                continue
            checks.append(check)

        daily = self._daily_costs(combined)
        checks = [self._with_contributors(c, daily) for c in checks]
        flags = [c.flag for c in checks if c.flag is not None]
        flags.sort(key=lambda f: (-self.SEVERITY_RANK[f.severity], -abs(f.deviation),
                                  f.subject, f.provider_id, f.account_id, f.period))

        warming = sum(1 for c in checks if c.status == CheckStatus.INSUFFICIENT_HISTORY)
        logger.info(f"Evaluated {len(checks)} observations: {len(flags)} anomalies, "
                    f"{warming} without sufficient history")
        return AnomalyReport(flags=flags, checks=checks, diagnostics=diagnostics)

    # Helpers

    def _trailing(self, observations: Sequence[Tuple[date, Decimal]],
                  as_of: date) -> List[Tuple[date, Decimal]]:
        """Observations in the window ending just before ``as_of``"""
        cutoff = as_of - timedelta(days=self.config.window_days)
        return [(d, c) for d, c in observations if cutoff < d < as_of]

    @staticmethod
    def _mean_and_std(values: Sequence[Decimal]) -> Tuple[Decimal, Decimal]:
        count = len(values)
        mean = sum(values, Decimal(0)) / count
        if count < 2:
            return mean, Decimal(0)
        variance = sum(((v - mean) ** 2 for v in values), Decimal(0)) / (count - 1)
        return mean, variance.sqrt()

    def _recompute(self, window: BaselineWindow) -> BaselineWindow:
        values = [cost for _, cost in window.observations]
        mean, std_dev = self._mean_and_std(values)
        return replace(window, rolling_average=mean,
                       rolling_std_dev=std_dev if len(values) >= 2 else None)

    def _severity(self, deviation: Decimal) -> Optional[Severity]:
        magnitude = abs(deviation)
        if magnitude >= self.config.high_deviation:
            return Severity.HIGH
        if magnitude >= self.config.medium_deviation:
            return Severity.MEDIUM
        return None

    def _build_flag(self, observation: CostObservation, stats: BaselineStatistics,
                    deviation: Decimal, severity: Severity) -> AnomalyFlag:
        direction = 'increase' if deviation > 0 else 'decrease'
        variance_percent = None
        if stats.mean != 0:
            variance_percent = (observation.cost - stats.mean) / abs(stats.mean) * Decimal(100)
            message = (f"{observation.subject} costs are {abs(variance_percent):.1f}% "
                       f"{'higher' if direction == 'increase' else 'lower'} than their "
                       f"{self.config.window_days}-day baseline")
        else:
            message = (f"{observation.subject} cost {observation.cost} deviates "
                       f"{abs(deviation):.1f} standard deviations from a zero baseline")

        return AnomalyFlag(
            subject=observation.subject,
            provider_id=observation.provider_id,
            account_id=observation.account_id,
            period=observation.day,
            observed_cost=observation.cost,
            baseline_mean=stats.mean,
            baseline_spread=stats.spread,
            deviation=deviation,
            severity=severity,
            direction=direction,
            variance_percent=variance_percent,
            message=message
        )

    @staticmethod
    def _require_finite(observation: CostObservation):
        if not observation.cost.is_finite():
            raise InputDataError(f"Observation for {observation.key} on {observation.day} "
                                 f"has non-finite cost {observation.cost}",
                                 subject=observation.subject, record=observation)

    @staticmethod
    def _daily_costs(observations: Iterable[CostObservation]) -> DailyCosts:
        """Index costs by (provider, account), then subject, then day"""
        daily: DailyCosts = defaultdict(lambda: defaultdict(dict))
        for observation in observations:
            daily[(observation.provider_id, observation.account_id)][observation.subject][observation.day] = \
                observation.cost
        return daily

    def _with_contributors(self, check: AnomalyCheck, daily: DailyCosts) -> AnomalyCheck:
        if check.flag is None:
            return check
        flag = replace(check.flag, contributing_subjects=self._contributors(check.flag, daily))
        return replace(check, flag=flag)

    def _contributors(self, flag: AnomalyFlag, daily: DailyCosts) -> Tuple[ContributingSubject, ...]:
        """Other subjects in the flag's account whose cost changed sharply from the previous day"""
        if self.config.max_contributors == 0:
            return ()

        previous_day = flag.period - timedelta(days=1)
        found = []
        for subject, costs in daily.get((flag.provider_id, flag.account_id), {}).items():
            if subject == flag.subject:
                continue
            cost = costs.get(flag.period)
            previous = costs.get(previous_day)
            if cost is None or previous is None or previous <= 0:
                continue
            change = (cost - previous) / previous * Decimal(100)
            if abs(change) > self.config.contributor_change_percent:
                found.append(ContributingSubject(subject=subject, cost=cost, change_percent=change))

        found.sort(key=lambda c: (-abs(c.change_percent), c.subject))
        return tuple(found[:self.config.max_contributors])

    @staticmethod
    def _combine(observations: Iterable[CostObservation]) -> List[CostObservation]:
        """Sum same-day observations per key and order by day"""
        totals: Dict[Tuple[date, BaselineKey], Decimal] = defaultdict(Decimal)
        for observation in observations:
            totals[(observation.day, observation.key)] += observation.cost

        return [
            CostObservation(key.subject, key.provider_id, key.account_id, day, cost)
            for (day, key), cost in sorted(totals.items())
        ]
