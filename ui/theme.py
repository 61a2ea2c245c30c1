"""Dark theme styling helper."""
from __future__ import annotations

from PySide6.QtGui import QColor, QPalette
from PySide6.QtWidgets import QApplication, QStyleFactory

STATUS_OK_COLOR = "#4caf50"
STATUS_FAIL_COLOR = "#f44336"


def status_style(ok: bool) -> str:
    color = STATUS_OK_COLOR if ok else STATUS_FAIL_COLOR
    return f"color: {color}; font-weight: bold;"


def apply_dark_theme(accent_hex: str = "#0063b1") -> None:
    app = QApplication.instance()
    if app is None:
        return

    app.setStyle(QStyleFactory.create("Fusion"))

    background = QColor("#1e1e1e")
    surface = QColor(32, 32, 32)
    text = QColor(230, 230, 230)
    disabled_text = QColor(130, 130, 130)
    accent = QColor(accent_hex)

    palette = QPalette()
    for role, color in (
        (QPalette.Window, background),
        (QPalette.WindowText, text),
        (QPalette.Base, QColor(18, 18, 18)),
        (QPalette.AlternateBase, surface),
        (QPalette.ToolTipBase, surface),
        (QPalette.ToolTipText, text),
        (QPalette.Text, text),
        (QPalette.Button, surface),
        (QPalette.ButtonText, text),
        (QPalette.Highlight, accent),
        (QPalette.HighlightedText, QColor("#ffffff")),
    ):
        palette.setColor(role, color)
    for role in (QPalette.Text, QPalette.ButtonText, QPalette.WindowText):
        palette.setColor(QPalette.Disabled, role, disabled_text)
    app.setPalette(palette)
