import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import os

import win32serviceutil
import win32service
import win32event
import servicemanager

from fbs.config import ServiceConfig, load_config
from fbs.logging_config import LogSink, get_logger
from fbs.monitor import MonitoringService

_ENV_CONFIG_PATH = "FBS_CONFIG"


def _config_path() -> Path:
    env = os.environ.get(_ENV_CONFIG_PATH)
    if env:
        return Path(env)
    return PROJECT_ROOT / "config.yml"


class BackupMonitorService(win32serviceutil.ServiceFramework):

    _svc_name_ = "FBS"
    _svc_display_name_ = "File Backup Service"
    _svc_description_ = "Backs up changed files in a monitored folder and prunes old backups"

    def __init__(self, args):
        win32serviceutil.ServiceFramework.__init__(self, args)
        self.stop_event = win32event.CreateEvent(None, 0, 0, None)
        self.monitor = None

    def SvcStop(self):
        servicemanager.LogInfoMsg("FBS Service stopping")
        self.ReportServiceStatus(win32service.SERVICE_STOP_PENDING)
        win32event.SetEvent(self.stop_event)

    def SvcDoRun(self):
        try:
            self.monitor = self.build_monitor()
            self.monitor.start()
        except Exception as exc:
            # host-level failure signal: report and stay stopped
            servicemanager.LogErrorMsg(f"Critical error during start: {exc!r}")
            self.ReportServiceStatus(win32service.SERVICE_STOPPED)
            return

        servicemanager.LogInfoMsg("FBS Service started")
        self.main()

    def build_monitor(self) -> MonitoringService:
        raw = load_config(_config_path())
        config = ServiceConfig.from_dict(raw)
        sink = LogSink(get_logger("fbs", config.log_file))
        return MonitoringService(config, sink)

    def main(self):
        win32event.WaitForSingleObject(self.stop_event, win32event.INFINITE)

        try:
            self.monitor.stop()
        except Exception as exc:
            servicemanager.LogErrorMsg(f"Error stopping service: {exc!r}")
        servicemanager.LogInfoMsg("FBS Service stopped cleanly")


if __name__ == "__main__":
    win32serviceutil.HandleCommandLine(BackupMonitorService)
