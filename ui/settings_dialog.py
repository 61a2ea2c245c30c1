"""Settings dialog for the cloud folder and download location."""
from __future__ import annotations

from pathlib import Path

from PySide6.QtWidgets import (
    QCheckBox,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from winprovision.user_settings import SettingsStore, UserSettings


class SettingsDialog(QDialog):
    def __init__(self, settings: UserSettings, store: SettingsStore, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._settings = settings
        self._store = store
        self.setWindowTitle("Provisioning Settings")
        self.setMinimumWidth(560)
        self._build_ui()

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        form = QFormLayout()

        self._cloud_root = QLineEdit(self._settings.cloud_root)
        self._cloud_root.setPlaceholderText(r"Defaults to %OneDrive%\Setup")
        form.addRow("Cloud Setup Folder", self._make_dir_picker(self._cloud_root, "Select Cloud Setup Folder"))

        self._download_dir = QLineEdit(self._settings.download_dir)
        self._download_dir.setPlaceholderText(r"Defaults to %TEMP%\WinProvision")
        form.addRow("Download Folder", self._make_dir_picker(self._download_dir, "Select Download Folder"))

        self._backup_existing = QCheckBox("Keep a numbered copy of files that get replaced")
        self._backup_existing.setChecked(self._settings.backup_existing)
        form.addRow("Backups", self._backup_existing)
        layout.addLayout(form)

        buttons = QDialogButtonBox(QDialogButtonBox.Save | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self._save)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _make_dir_picker(self, field: QLineEdit, title: str) -> QWidget:
        container = QWidget()
        row = QHBoxLayout(container)
        row.setContentsMargins(0, 0, 0, 0)
        row.addWidget(field)
        browse = QPushButton("Browse")
        browse.clicked.connect(lambda: self._browse_for_dir(field, title))
        row.addWidget(browse)
        return container

    def _browse_for_dir(self, field: QLineEdit, title: str) -> None:
        current = field.text().strip()
        start_dir = current or str(Path.home())
        path = QFileDialog.getExistingDirectory(self, title, start_dir)
        if path:
            field.setText(path)

    def _save(self) -> None:
        cloud_root = self._cloud_root.text().strip()
        if cloud_root and not Path(cloud_root).is_dir():
            QMessageBox.warning(self, "Invalid Folder", f"Folder not found:\n{cloud_root}")
            return
        self._settings.cloud_root = cloud_root
        self._settings.download_dir = self._download_dir.text().strip()
        self._settings.backup_existing = self._backup_existing.isChecked()
        self._store.save(self._settings)
        self.accept()
