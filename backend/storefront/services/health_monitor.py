import enum
import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from apscheduler.schedulers.blocking import BlockingScheduler
from sqlalchemy import text
from sqlalchemy.orm import Session

from storefront.config import Settings, settings as default_settings
from storefront.repositories.product_repo import CategoryRepository, ProductRepository
from storefront.services.backup_service import JsonBackupService
from storefront.utils.log import with_data

log = logging.getLogger("storefront.monitor")


class AlertKind(str, enum.Enum):
    CRITICAL_LOW_PRODUCTS = "CRITICAL_LOW_PRODUCTS"
    CRITICAL_LOW_CATEGORIES = "CRITICAL_LOW_CATEGORIES"
    SUDDEN_PRODUCT_DROP = "SUDDEN_PRODUCT_DROP"
    MONITOR_ERROR = "MONITOR_ERROR"


@dataclass
class MonitorConfig:
    interval: int = 60
    min_products: int = 10
    min_categories: int = 2
    alert_cooldown: int = 300
    sudden_drop: int = 10
    stable_log_interval: int = 600
    alert_file: str = "./logs/database-alert.json"

    @classmethod
    def from_settings(cls, s: Settings = None, **overrides) -> "MonitorConfig":
        s = s or default_settings
        cfg = cls(
            interval=s.MONITOR_INTERVAL_SECONDS,
            min_products=s.MIN_PRODUCTS_THRESHOLD,
            min_categories=s.MIN_CATEGORIES_THRESHOLD,
            alert_cooldown=s.ALERT_COOLDOWN_SECONDS,
            sudden_drop=s.SUDDEN_DROP_THRESHOLD,
            stable_log_interval=s.STABLE_LOG_INTERVAL_SECONDS,
            alert_file=s.ALERT_FILE,
        )
        for k, v in overrides.items():
            if v is not None:
                setattr(cfg, k, v)
        return cfg


@dataclass
class HealthSample:
    timestamp: str
    products: int
    categories: int
    product_delta: int
    category_delta: int
    healthy: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        d = asdict(self)
        if d["error"] is None:
            del d["error"]
        return d


@dataclass
class MonitorState:
    """Everything the loop carries from one tick to the next."""

    previous_products: int = 0
    previous_categories: int = 0
    last_alert_time: Optional[float] = None
    alerts_sent: int = 0
    low_products_incident: bool = False
    last_stable_log: Optional[float] = None


@dataclass
class TickResult:
    sample: Optional[HealthSample]
    fired: List[AlertKind] = field(default_factory=list)
    sent: List[AlertKind] = field(default_factory=list)
    backup_file: Optional[str] = None


class DatabaseMonitor:
    """
    Periodically samples active product/category counts and raises alerts.

    A tick never raises: count failures become an unhealthy zero sample and any
    other failure becomes a MONITOR_ERROR alert. Alerts go to the log and to a
    single JSON alert file; at most one is sent per cooldown window.
    """

    def __init__(
        self,
        config: MonitorConfig,
        session_factory: Callable[[], Session],
        backup: Optional[JsonBackupService] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.session_factory = session_factory
        self.backup = backup
        self.clock = clock
        self._scheduler: Optional[BlockingScheduler] = None
        self._stopping = False

    def _now_iso(self) -> str:
        return datetime.fromtimestamp(self.clock(), timezone.utc).isoformat()

    def check_connection(self):
        """Raises if the store is unreachable."""
        with self.session_factory() as s:
            s.execute(text("SELECT 1"))

    def sample_health(self, state: MonitorState) -> HealthSample:
        try:
            with self.session_factory() as s:
                products = ProductRepository(s).count_active()
                categories = CategoryRepository(s).count_active()
        except Exception as e:
            log.error(with_data("Failed to check database health", {"error": str(e)}))
            return HealthSample(
                timestamp=self._now_iso(),
                products=0,
                categories=0,
                product_delta=0,
                category_delta=0,
                healthy=False,
                error=str(e),
            )

        sample = HealthSample(
            timestamp=self._now_iso(),
            products=products,
            categories=categories,
            product_delta=products - state.previous_products,
            category_delta=categories - state.previous_categories,
            healthy=products >= self.config.min_products
            and categories >= self.config.min_categories,
        )
        state.previous_products = products
        state.previous_categories = categories
        return sample

    def evaluate(self, sample: HealthSample) -> List[Tuple[AlertKind, Dict]]:
        cfg = self.config
        fired = []
        if sample.products < cfg.min_products:
            fired.append(
                (
                    AlertKind.CRITICAL_LOW_PRODUCTS,
                    {"current": sample.products, "threshold": cfg.min_products, "health": sample.to_dict()},
                )
            )
        if sample.categories < cfg.min_categories:
            fired.append(
                (
                    AlertKind.CRITICAL_LOW_CATEGORIES,
                    {"current": sample.categories, "threshold": cfg.min_categories, "health": sample.to_dict()},
                )
            )
        # checked on healthy ticks too: a mass delete can leave us above the floor
        if sample.product_delta < -cfg.sudden_drop:
            fired.append(
                (
                    AlertKind.SUDDEN_PRODUCT_DROP,
                    {"dropped": abs(sample.product_delta), "health": sample.to_dict()},
                )
            )
        return fired

    def send_alert(self, state: MonitorState, kind: AlertKind, data: Dict) -> bool:
        """Persist and announce an alert unless one was already sent inside the cooldown."""
        now = self.clock()
        if state.last_alert_time is not None and now - state.last_alert_time < self.config.alert_cooldown:
            log.info("Alert %s suppressed (cooldown, last sent %.0fs ago)", kind.value, now - state.last_alert_time)
            return False

        state.last_alert_time = now
        state.alerts_sent += 1
        log.critical(with_data(f"ALERT #{state.alerts_sent}: {kind.value}", data))

        alert = {
            "alertId": state.alerts_sent,
            "timestamp": self._now_iso(),
            "type": kind.value,
            "data": data,
            "acknowledged": False,
        }
        try:
            path = self.config.alert_file
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
            with open(path, "w", encoding="utf-8") as fh:
                json.dump(alert, fh, indent=2, default=str)
        except OSError as e:
            log.error(with_data("Failed to write alert file", {"error": str(e)}))
        return True

    def emergency_backup(self) -> Optional[str]:
        if self.backup is None:
            log.warning("No backup service configured, skipping emergency backup")
            return None
        log.warning("Creating emergency database backup")
        try:
            path = self.backup.create_emergency_backup()
        except Exception as e:
            log.error(with_data("Failed to create emergency backup", {"error": str(e)}))
            return None
        log.info(with_data("Emergency backup created", {"backupFile": path}))
        return path

    def _log_healthy(self, state: MonitorState, sample: HealthSample):
        if sample.product_delta != 0 or sample.category_delta != 0:
            log.info(with_data("Database health check - changes detected", sample.to_dict()))
            return
        now = self.clock()
        if state.last_stable_log is None or now - state.last_stable_log >= self.config.stable_log_interval:
            state.last_stable_log = now
            log.info(
                with_data(
                    "Database health check - stable",
                    {"products": sample.products, "categories": sample.categories},
                )
            )

    def tick(self, state: MonitorState) -> TickResult:
        result = TickResult(sample=None)
        try:
            sample = self.sample_health(state)
            result.sample = sample
            if sample.healthy:
                self._log_healthy(state, sample)
            else:
                log.warning(with_data("Database health check - UNHEALTHY", sample.to_dict()))

            for kind, data in self.evaluate(sample):
                result.fired.append(kind)
                log.warning("Alert condition %s: %s", kind.value, json.dumps(data, default=str))
                if self.send_alert(state, kind, data):
                    result.sent.append(kind)

            # one emergency snapshot per low-products incident; skipped when the store is unreachable
            if sample.error is None:
                if sample.products < self.config.min_products:
                    if not state.low_products_incident:
                        state.low_products_incident = True
                        result.backup_file = self.emergency_backup()
                else:
                    state.low_products_incident = False
        except Exception as e:
            log.exception("Monitoring loop error")
            if self.send_alert(state, AlertKind.MONITOR_ERROR, {"error": str(e), "timestamp": self._now_iso()}):
                result.sent.append(AlertKind.MONITOR_ERROR)
        return result

    def run(self, state: Optional[MonitorState] = None):
        """Block, ticking every `interval` seconds until stop() is called."""
        state = state or MonitorState()
        log.info(
            with_data(
                "Starting database health monitoring",
                {
                    "interval": f"{self.config.interval}s",
                    "thresholds": {
                        "products": self.config.min_products,
                        "categories": self.config.min_categories,
                    },
                },
            )
        )
        first = self.tick(state)
        if first.sample is not None:
            log.info(with_data("Initial database health", first.sample.to_dict()))
        if self._stopping:
            log.info("Stop requested during the initial check, not scheduling")
            return state

        self._scheduler = BlockingScheduler()
        # one tick at a time; a late tick is folded into the next rather than stacked
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.config.interval,
            args=[state],
            id="database_health_tick",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        return state

    def stop(self):
        self._stopping = True
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
