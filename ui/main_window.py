"""Main window hosting the provisioning tabs and the shared log."""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

from PySide6.QtCore import Qt, QThreadPool
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPlainTextEdit,
    QPushButton,
    QSplitter,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from services.installer import InstallerService
from services.personal_config import PersonalConfigService
from services.privilege import is_admin
from services.system_config import SystemConfigService
from winprovision.constants import IMMUTABLE_CONFIG
from winprovision.paths import resolve_cloud_root
from winprovision.user_settings import SettingsStore, UserSettings
from ui.apps_tab import AppsTab
from ui.config_tab import ConfigTab
from ui.settings_dialog import SettingsDialog
from ui.system_tab import SystemTab
from ui.theme import apply_dark_theme


class MainWindow(QMainWindow):
    def __init__(self, settings: UserSettings, store: SettingsStore, cloud_root: Path | None) -> None:
        super().__init__()
        self._settings = settings
        self._store = store
        self._cloud_root = cloud_root
        self._thread_pool = QThreadPool.globalInstance()
        self.setWindowTitle("WinProvision")
        self.resize(1100, 760)
        self._build_ui()
        self._build_tabs()
        if not is_admin():
            self.log("[WARN] Not running elevated; lock screen, account picture and features need admin.")

    def log(self, message: str) -> None:
        self._log_view.appendPlainText(f"{datetime.now():%H:%M:%S} {message}")

    def _build_ui(self) -> None:
        central = QWidget()
        layout = QVBoxLayout(central)

        header = QHBoxLayout()
        self._cloud_label = QLabel()
        header.addWidget(self._cloud_label)
        header.addStretch()
        settings_button = QPushButton("Settings")
        settings_button.clicked.connect(self._open_settings)
        header.addWidget(settings_button)
        layout.addLayout(header)

        splitter = QSplitter(Qt.Vertical)
        self._tabs = QTabWidget()
        splitter.addWidget(self._tabs)
        self._log_view = QPlainTextEdit()
        self._log_view.setReadOnly(True)
        splitter.addWidget(self._log_view)
        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 1)
        layout.addWidget(splitter)
        self.setCentralWidget(central)

    def _build_tabs(self) -> None:
        self._tabs.clear()
        self._cloud_label.setText(f"Cloud folder: {self._cloud_root or 'not configured'}")
        cloud = IMMUTABLE_CONFIG.cloud
        installer = InstallerService(download_dir=self._settings.download_dir or None)
        personal = PersonalConfigService(
            cloud,
            cloud_root=self._cloud_root,
            backup_existing=self._settings.backup_existing,
        )
        self._tabs.addTab(AppsTab(installer, cloud, self._cloud_root, self.log, self._thread_pool), "Applications")
        self._tabs.addTab(ConfigTab(personal, self.log, self._thread_pool), "Personal Config")
        try:
            system = SystemConfigService(
                IMMUTABLE_CONFIG.system,
                cloud,
                cloud_root=self._cloud_root,
                backup_existing=self._settings.backup_existing,
            )
        except RuntimeError as exc:
            self.log(f"[ERROR] System tweaks unavailable: {exc}")
            return
        self._tabs.addTab(SystemTab(system, self.log, self._thread_pool), "System Tweaks")

    def _open_settings(self) -> None:
        dialog = SettingsDialog(self._settings, self._store, self)
        if dialog.exec():
            self._cloud_root = resolve_cloud_root(None, self._settings.cloud_root)
            self.log("Settings saved.")
            self._build_tabs()


def run_gui(settings: UserSettings, store: SettingsStore, cloud_root: Path | None) -> int:
    app = QApplication.instance() or QApplication(sys.argv)
    apply_dark_theme(IMMUTABLE_CONFIG.system.personalization.accent_color)
    window = MainWindow(settings, store, cloud_root)
    window.show()
    return app.exec()
