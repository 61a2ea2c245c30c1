"""Personal configuration tab."""
from __future__ import annotations

from typing import Callable, Dict

from PySide6.QtCore import QThreadPool
from PySide6.QtWidgets import (
    QCheckBox,
    QHBoxLayout,
    QLabel,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from services.personal_config import PersonalConfigService
from services.system_config import ApplyStepResult
from ui.workers import ServiceWorker

LogCallback = Callable[[str], None]


class ConfigTab(QWidget):
    def __init__(self, service: PersonalConfigService, log_callback: LogCallback, thread_pool: QThreadPool) -> None:
        super().__init__()
        self._service = service
        self._log = log_callback
        self._thread_pool = thread_pool
        self._checks: Dict[str, QCheckBox] = {}
        self._workers: set[ServiceWorker] = set()
        self._busy = False
        self._build_ui()

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.addWidget(QLabel("Copy settings from the cloud setup folder into place"))
        for name in self._service.available_steps():
            checkbox = QCheckBox(name)
            checkbox.setChecked(True)
            layout.addWidget(checkbox)
            self._checks[name] = checkbox
        button_row = QHBoxLayout()
        self._btn_apply = QPushButton("Copy Selected")
        self._btn_apply.clicked.connect(self._start_apply)
        button_row.addWidget(self._btn_apply)
        button_row.addStretch()
        layout.addLayout(button_row)
        layout.addStretch()

    def _start_apply(self) -> None:
        if self._busy:
            QMessageBox.information(self, "In Progress", "Please wait for current operation to finish.")
            return
        selected = [name for name, checkbox in self._checks.items() if checkbox.isChecked()]
        if not selected:
            QMessageBox.information(self, "No Selection", "Select at least one item to copy.")
            return
        self._busy = True
        self._btn_apply.setEnabled(False)
        self._log(f"Copying: {', '.join(selected)}")
        worker = ServiceWorker(self._service.apply_with_results, selected)
        worker.signals.finished.connect(self._handle_finished)
        worker.signals.error.connect(self._handle_error)
        self._workers.add(worker)
        worker.signals.finished.connect(lambda *_: self._workers.discard(worker))
        worker.signals.error.connect(lambda *_: self._workers.discard(worker))
        self._thread_pool.start(worker)

    def _handle_finished(self, results: list[ApplyStepResult] | None) -> None:
        for result in results or []:
            status = "OK" if result.success else "FAILED"
            detail = f" - {result.detail}" if result.detail else ""
            self._log(f"[{status}] {result.name}{detail}")
        self._busy = False
        self._btn_apply.setEnabled(True)

    def _handle_error(self, message: str) -> None:
        self._log(f"[ERROR] {message}")
        self._busy = False
        self._btn_apply.setEnabled(True)
