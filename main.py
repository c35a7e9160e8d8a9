"""Application entrypoint."""

from __future__ import annotations

import sys
from typing import List, Optional, Sequence

from animator import Animator
from chat_client import StreamingChatClient
from chat_controller import ChatController
from config import JsonConfigStore
from dispatch import QtDispatcher
from hotkey import PushToTalkHotkey
from interfaces import ConfigStore
from logger import log
from models import SessionState
from process_job import ProcessLauncher
from recorder import FfmpegRecorder
from transcriber import WhisperTranscriber
from voice_pipeline import RecordingPipeline

try:
    from PySide6.QtGui import QAction, QFontDatabase
    from PySide6.QtWidgets import (
        QApplication,
        QHBoxLayout,
        QInputDialog,
        QLineEdit,
        QMainWindow,
        QMessageBox,
        QPlainTextEdit,
        QPushButton,
        QVBoxLayout,
        QWidget,
    )
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

CHAT_WIDTH = 56

MIC_LABELS = {
    SessionState.IDLE: "🎤 Talk",
    SessionState.RECORDING: "⏹ Send",
    SessionState.TRANSCRIBING: "… Transcribing",
}


class TranscriptSink:
    """Ordered text lines shown in a read-only QPlainTextEdit."""

    def __init__(self, view: QPlainTextEdit) -> None:
        self._view = view
        self._lines: List[str] = []

    def line_count(self) -> int:
        return len(self._lines)

    def set_lines(self, start: int, end: Optional[int], lines: Sequence[str]) -> None:
        stop = len(self._lines) if end is None else min(end, len(self._lines))
        self._lines[start:stop] = list(lines)
        # Avatar repaints (end set) keep the reader's scroll position.
        self._refresh(follow=end is None)

    def append_lines(self, lines: Sequence[str]) -> None:
        self._lines.extend(lines)
        self._refresh(follow=True)

    def _refresh(self, follow: bool) -> None:
        bar = self._view.verticalScrollBar()
        position = bar.value()
        self._view.setPlainText("\n".join(self._lines))
        bar.setValue(bar.maximum() if follow else position)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store: ConfigStore = JsonConfigStore()
        self.dispatcher = QtDispatcher()
        launcher = ProcessLauncher(self.dispatcher)

        self.window = QMainWindow()
        self.window.setWindowTitle("nyaa~")
        self.view = QPlainTextEdit()
        self.view.setReadOnly(True)
        self.view.setFont(QFontDatabase.systemFont(QFontDatabase.SystemFont.FixedFont))
        self.input = QLineEdit()
        self.input.setPlaceholderText("> ask Nya something")
        self.input.returnPressed.connect(self._on_submit)
        self.mic_button = QPushButton(MIC_LABELS[SessionState.IDLE])
        self.mic_button.clicked.connect(self._on_mic_clicked)
        self._build_layout()
        self._setup_menu()

        self.transcriber = WhisperTranscriber(
            self.dispatcher, launcher, settings_provider=self.config_store.get_chat_settings
        )
        self.pipeline = RecordingPipeline(
            self.dispatcher,
            FfmpegRecorder(launcher),
            self.transcriber,
            on_state_change=self._on_voice_state,
        )
        self.animator = Animator(self.dispatcher)
        self.sink = TranscriptSink(self.view)
        self.controller = ChatController(
            client=StreamingChatClient(self.dispatcher, launcher),
            animator=self.animator,
            sink=self.sink,
            settings_provider=self.config_store.get_chat_settings,
            pipeline=self.pipeline,
            width=CHAT_WIDTH,
            system_prompt=self.config_store.get_system_prompt() or None,
            on_busy_change=self._on_busy_change,
        )
        self.hotkey = PushToTalkHotkey(self.dispatcher, self.config_store.get_hotkey())
        self.app.aboutToQuit.connect(self.shutdown)

    def _build_layout(self) -> None:
        row = QHBoxLayout()
        row.addWidget(self.input, 1)
        row.addWidget(self.mic_button)
        layout = QVBoxLayout()
        layout.addWidget(self.view, 1)
        layout.addLayout(row)
        central = QWidget()
        central.setLayout(layout)
        self.window.setCentralWidget(central)
        self.window.resize(520, 720)

    def _setup_menu(self) -> None:
        menu = self.window.menuBar().addMenu("Settings")

        api_action = QAction("Set API Key", self.window)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        model_action = QAction("Set Model", self.window)
        model_action.triggered.connect(self._set_model)
        menu.addAction(model_action)

        hotkey_action = QAction("Set Push-to-Talk Key", self.window)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        menu.addSeparator()
        quit_action = QAction("Quit", self.window)
        quit_action.triggered.connect(self.app.quit)
        menu.addAction(quit_action)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(self.window, "API Key", "OpenAI-compatible API key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        QMessageBox.information(self.window, "Saved", "API key saved and applied.")

    def _set_model(self) -> None:
        value, ok = QInputDialog.getText(
            self.window, "Model", "Chat model id", text=self.config_store.get_model()
        )
        if not ok or not value:
            return
        self.config_store.set_model(value)

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(
            self.window, "Hotkey", "Use pynput key format, e.g. Key.f9"
        )
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(self.window, "Saved", "Hotkey saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # UI handlers (GUI thread)
    # ------------------------------------------------------------------

    def _on_submit(self) -> None:
        if self.controller.submit(self.input.text()):
            self.input.clear()

    def _on_mic_clicked(self) -> None:
        self.controller.toggle_voice()

    def _on_voice_state(self, from_state: SessionState, to_state: SessionState) -> None:
        self.mic_button.setText(MIC_LABELS[to_state])
        self.mic_button.setEnabled(to_state != SessionState.TRANSCRIBING)

    def _on_busy_change(self, busy: bool) -> None:
        self.input.setEnabled(not busy)
        if not busy:
            self.input.setFocus()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.window.show()
        self.controller.open()
        try:
            self.hotkey.start(
                on_press=self.controller.start_voice,
                on_release=self.controller.stop_voice,
            )
        except Exception as exc:
            log.warning("push-to-talk disabled: %s", exc)
        return self.app.exec()

    def shutdown(self) -> None:
        self.hotkey.stop()
        self.controller.close()
        self.pipeline.shutdown()


def main() -> int:
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
