"""System tweaks status dashboard."""
from __future__ import annotations

from typing import Callable, Dict

from PySide6.QtCore import Qt, QThreadPool
from PySide6.QtWidgets import (
    QCheckBox,
    QGridLayout,
    QHBoxLayout,
    QLabel,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from services.system_config import (
    STEP_POWER,
    ApplyStepResult,
    ConfigCheckResult,
    SystemConfigService,
)
from ui.theme import status_style
from ui.workers import ServiceWorker

LogCallback = Callable[[str], None]

STEP_CAPTIONS = {
    "Display Scaling": "DPI scaling (sign out to apply)",
    "Wallpaper": "Desktop wallpaper from cloud Pictures",
    "Lock Screen": "Lock screen image (admin)",
    "Account Picture": "Account picture (admin)",
    "Accent Colour": "Accent colour on Start, taskbar and title bars",
    "Clipboard Sync": "Clipboard history and cloud sync",
    "Optional Features": "Optional Windows features (admin)",
    "Night Light": "Night light schedule",
    "Start Layout": "Pinned start menu layout",
    "Date/Time Formats": "Date and time formats",
    "Power": "Power plan, timeouts and hibernation",
}
CHECK_TO_STEP = {"Power Plan": STEP_POWER}


class SystemTab(QWidget):
    def __init__(
        self,
        service: SystemConfigService,
        log_callback: LogCallback,
        thread_pool: QThreadPool,
    ) -> None:
        super().__init__()
        self._service = service
        self._log = log_callback
        self._thread_pool = thread_pool
        self._status_labels: Dict[str, QLabel] = {}
        self._setting_checks: Dict[str, QCheckBox] = {}
        self._workers: set[ServiceWorker] = set()
        self._busy = False
        self._build_ui()
        self._start_check()

    def _track_worker(self, worker: ServiceWorker) -> None:
        self._workers.add(worker)
        worker.signals.finished.connect(lambda *_: self._workers.discard(worker))
        worker.signals.error.connect(lambda *_: self._workers.discard(worker))

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.addWidget(QLabel("Registry, power and personalization tweaks"))

        grid = QGridLayout()
        layout.addLayout(grid)
        grid.addWidget(QLabel("Apply"), 0, 0)
        grid.addWidget(QLabel("Setting"), 0, 1)
        grid.addWidget(QLabel("Status"), 0, 2)

        for row, key in enumerate(self._service.available_apply_steps(), start=1):
            checkbox = QCheckBox()
            checkbox.setChecked(True)
            value_label = QLabel("Checking...")
            value_label.setAlignment(Qt.AlignLeft)
            grid.addWidget(checkbox, row, 0, alignment=Qt.AlignCenter)
            grid.addWidget(QLabel(STEP_CAPTIONS.get(key, key)), row, 1)
            grid.addWidget(value_label, row, 2)
            self._setting_checks[key] = checkbox
            self._status_labels[key] = value_label

        button_row = QHBoxLayout()
        self._btn_select_all = QPushButton("Select All")
        self._btn_select_all.clicked.connect(lambda: self._set_all_selection(True))
        button_row.addWidget(self._btn_select_all)

        self._btn_deselect_all = QPushButton("Deselect All")
        self._btn_deselect_all.clicked.connect(lambda: self._set_all_selection(False))
        button_row.addWidget(self._btn_deselect_all)

        self._btn_apply = QPushButton("Apply Selected")
        self._btn_apply.clicked.connect(self._start_apply)
        button_row.addWidget(self._btn_apply)

        self._btn_refresh = QPushButton("Refresh Status")
        self._btn_refresh.clicked.connect(self._start_check)
        button_row.addWidget(self._btn_refresh)

        layout.addLayout(button_row)
        layout.addStretch()

    def _start_check(self) -> None:
        if self._busy:
            return
        self._busy = True
        self._set_controls_enabled(False)
        for label in self._status_labels.values():
            label.setText("")
            label.setStyleSheet("")
        worker = ServiceWorker(self._service.check)
        worker.signals.finished.connect(self._handle_check_results)
        worker.signals.error.connect(self._handle_error)
        self._track_worker(worker)
        self._thread_pool.start(worker)

    def _handle_check_results(self, results: list[ConfigCheckResult]) -> None:
        failures = 0
        for result in results:
            label = self._status_labels.get(CHECK_TO_STEP.get(result.name, result.name))
            if not label:
                continue
            icon = "✓" if result.in_desired_state else "✗"
            label.setText(f"{icon} {result.actual} (target: {result.expected})")
            label.setStyleSheet(status_style(result.in_desired_state))
            if not result.in_desired_state:
                failures += 1
        self._busy = False
        self._set_controls_enabled(True)
        self._log("All checked tweaks in place." if failures == 0 else f"{failures} tweak(s) differ from target.")

    def _start_apply(self) -> None:
        if self._busy:
            QMessageBox.information(self, "In Progress", "Please wait for current operation to finish.")
            return
        selected_steps = [name for name, checkbox in self._setting_checks.items() if checkbox.isChecked()]
        if not selected_steps:
            QMessageBox.information(self, "No Selection", "Select at least one tweak to apply.")
            return
        self._busy = True
        self._set_controls_enabled(False)
        self._log(f"Applying tweaks: {', '.join(selected_steps)}")
        worker = ServiceWorker(self._service.apply_with_results, selected_steps)
        worker.signals.finished.connect(self._handle_apply_finished)
        worker.signals.error.connect(self._handle_error)
        self._track_worker(worker)
        self._thread_pool.start(worker)

    def _handle_apply_finished(self, results: list[ApplyStepResult] | None) -> None:
        failures = 0
        for result in results or []:
            status = "OK" if result.success else "FAILED"
            detail = f" - {result.detail}" if result.detail else ""
            self._log(f"[{status}] {result.name}{detail}")
            if not result.success:
                failures += 1
        if failures:
            self._log(f"[WARN] {failures} tweak(s) failed.")
        self._busy = False
        self._start_check()

    def _set_all_selection(self, selected: bool) -> None:
        for checkbox in self._setting_checks.values():
            checkbox.setChecked(selected)

    def _set_controls_enabled(self, enabled: bool) -> None:
        for button in (self._btn_apply, self._btn_refresh, self._btn_select_all, self._btn_deselect_all):
            button.setEnabled(enabled)
        for checkbox in self._setting_checks.values():
            checkbox.setEnabled(enabled)

    def _handle_error(self, message: str) -> None:
        self._log(f"[ERROR] {message}")
        self._busy = False
        self._set_controls_enabled(True)
