import os
import tempfile

# settings are read at import time, so point them at a scratch area before storefront loads
_TMP = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["JSON_BACKUP_DIR"] = os.path.join(_TMP, "json-backups")
os.environ["EMERGENCY_BACKUP_DIR"] = os.path.join(_TMP, "emergency")
os.environ["ALERT_FILE"] = os.path.join(_TMP, "logs", "database-alert.json")
os.environ["MONITOR_LOG_FILE"] = os.path.join(_TMP, "logs", "database-monitor.log")
os.environ["JWT_SECRET"] = "test-secret"
