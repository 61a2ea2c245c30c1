"""Applications tab: app list downloads and winget packages."""
from __future__ import annotations

from pathlib import Path
from typing import Callable

from PySide6.QtCore import Qt, QThreadPool
from PySide6.QtWidgets import (
    QAbstractItemView,
    QHBoxLayout,
    QHeaderView,
    QMessageBox,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from services.installer import InstallerService, OperationResult
from winprovision.app_list import AppEntry, ConfigFileError, load_app_list, load_winget_list
from winprovision.constants import CloudLayout
from ui.workers import ServiceWorker

LogCallback = Callable[[str], None]
SOURCE_APP_LIST = "App list"
SOURCE_WINGET = "winget"


class AppsTab(QWidget):
    def __init__(
        self,
        installer: InstallerService,
        layout: CloudLayout,
        cloud_root: Path | None,
        log_callback: LogCallback,
        thread_pool: QThreadPool,
    ) -> None:
        super().__init__()
        self._installer = installer
        self._layout = layout
        self._cloud_root = cloud_root
        self._log = log_callback
        self._thread_pool = thread_pool
        self._apps: list[AppEntry] = []
        self._package_ids: list[str] = []
        self._workers: set[ServiceWorker] = set()
        self._busy = False
        self._build_ui()
        self._reload_lists()

    def _track_worker(self, worker: ServiceWorker) -> None:
        self._workers.add(worker)
        worker.signals.finished.connect(lambda *_: self._workers.discard(worker))
        worker.signals.error.connect(lambda *_: self._workers.discard(worker))

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        button_row = QHBoxLayout()
        self._btn_reload = QPushButton("Reload Lists")
        self._btn_install = QPushButton("Install Selected")
        self._btn_select_all = QPushButton("Select All")
        self._btn_select_none = QPushButton("Select None")
        button_row.addWidget(self._btn_reload)
        button_row.addWidget(self._btn_install)
        button_row.addStretch()
        button_row.addWidget(self._btn_select_all)
        button_row.addWidget(self._btn_select_none)
        layout.addLayout(button_row)

        self._table = QTableWidget(0, 4, self)
        self._table.setHorizontalHeaderLabels(["Select", "Source", "Name", "Detail"])
        self._table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self._table.setAlternatingRowColors(True)
        self._table.verticalHeader().setVisible(False)
        header = self._table.horizontalHeader()
        header.setStretchLastSection(True)
        header.setSectionResizeMode(0, QHeaderView.ResizeMode.ResizeToContents)
        header.setSectionResizeMode(1, QHeaderView.ResizeMode.ResizeToContents)
        header.setSectionResizeMode(2, QHeaderView.ResizeMode.ResizeToContents)
        layout.addWidget(self._table)

        self._btn_reload.clicked.connect(self._reload_lists)
        self._btn_install.clicked.connect(self._start_install)
        self._btn_select_all.clicked.connect(lambda: self._set_all(Qt.Checked))
        self._btn_select_none.clicked.connect(lambda: self._set_all(Qt.Unchecked))

    def _reload_lists(self) -> None:
        self._apps = []
        self._package_ids = []
        if self._cloud_root is None:
            self._log("[WARN] Cloud setup folder not configured; open Settings.")
        else:
            self._apps = self._load_list(load_app_list, self._cloud_root / self._layout.app_list)
            self._package_ids = self._load_list(load_winget_list, self._cloud_root / self._layout.winget_list)
        self._populate_table()

    def _load_list(self, loader: Callable[..., list], path: Path) -> list:
        try:
            return loader(path, self._log)
        except ConfigFileError as exc:
            self._log(f"[ERROR] {exc}")
            return []

    def _populate_table(self) -> None:
        rows: list[tuple[str, str, str]] = [
            (SOURCE_APP_LIST, app.name, f"{app.installer_type} {app.url}") for app in self._apps
        ]
        rows.extend((SOURCE_WINGET, package_id, "") for package_id in self._package_ids)
        self._table.setRowCount(len(rows))
        for row, (source, name, detail) in enumerate(rows):
            check = QTableWidgetItem()
            check.setFlags(Qt.ItemIsUserCheckable | Qt.ItemIsEnabled)
            check.setCheckState(Qt.Checked)
            self._table.setItem(row, 0, check)
            self._table.setItem(row, 1, QTableWidgetItem(source))
            self._table.setItem(row, 2, QTableWidgetItem(name))
            self._table.setItem(row, 3, QTableWidgetItem(detail))

    def _set_all(self, state: Qt.CheckState) -> None:
        for row in range(self._table.rowCount()):
            item = self._table.item(row, 0)
            if item:
                item.setCheckState(state)

    def _selected(self) -> tuple[list[AppEntry], list[str]]:
        checked = {
            (self._table.item(row, 1).text(), self._table.item(row, 2).text())
            for row in range(self._table.rowCount())
            if self._table.item(row, 0).checkState() == Qt.Checked
        }
        apps = [app for app in self._apps if (SOURCE_APP_LIST, app.name) in checked]
        package_ids = [pid for pid in self._package_ids if (SOURCE_WINGET, pid) in checked]
        return apps, package_ids

    def _run_install(self, apps: list[AppEntry], package_ids: list[str]) -> list[OperationResult]:
        return self._installer.install_apps(apps) + self._installer.install_winget(package_ids)

    def _start_install(self) -> None:
        if self._busy:
            QMessageBox.information(self, "In Progress", "Please wait for current operation to finish.")
            return
        apps, package_ids = self._selected()
        if not apps and not package_ids:
            QMessageBox.information(self, "No Selection", "Select at least one application.")
            return
        self._busy = True
        self._set_buttons_enabled(False)
        self._log(f"Installing {len(apps)} application(s) and {len(package_ids)} winget package(s)...")
        worker = ServiceWorker(self._run_install, apps, package_ids)
        worker.signals.finished.connect(self._handle_install_finished)
        worker.signals.error.connect(self._handle_error)
        self._track_worker(worker)
        self._thread_pool.start(worker)

    def _handle_install_finished(self, results: list[OperationResult] | None) -> None:
        for result in results or []:
            status = "OK" if result.success else "FAILED"
            self._log(f"[{status}] {result.operation} :: {result.name} -> {result.message}")
        self._busy = False
        self._set_buttons_enabled(True)

    def _set_buttons_enabled(self, enabled: bool) -> None:
        for button in (self._btn_reload, self._btn_install, self._btn_select_all, self._btn_select_none):
            button.setEnabled(enabled)

    def _handle_error(self, message: str) -> None:
        self._log(f"[ERROR] {message}")
        self._busy = False
        self._set_buttons_enabled(True)
