import logging
import shlex
import signal
from threading import Lock, Thread
from typing import Optional

from alarms import AlarmError, AlarmManager, AlarmStore, JsonFileStorage
from alarms.sounds import SoundResolver
from config import Config, load_config, setup_logging

try:  # Optional local TTS for spoken alarm announcements
    import pyttsx3
except ImportError:  # pragma: no cover - optional
    pyttsx3 = None  # type: ignore

logger = logging.getLogger("alarm_clock")

HELP = """Commands:
  add HH:MM [seconds] [label...]   create an alarm (uses the draft recording if any)
  list                             show alarms
  label ID TEXT                    rename an alarm
  delete ID                        remove an alarm
  record [ID]                      start recording (for alarm ID, or a draft)
  stop                             finish recording
  cancel                           abort recording
  discard                          drop the draft recording
  play ID                          play an alarm's recording once
  devices                          list audio devices
  snooze | dismiss                 resolve the ringing alarm
  quit"""


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


class LocalSpeaker:
    """Lightweight offline TTS wrapper (uses SAPI via pyttsx3 on Windows)."""

    def __init__(self, rate: int = 185):
        self._engine = pyttsx3.init() if pyttsx3 else None
        self._lock = Lock()
        if self._engine:
            try:
                self._engine.setProperty("rate", rate)
            except Exception:
                logger.debug("Failed to set pyttsx3 rate")

    @property
    def available(self) -> bool:
        return self._engine is not None

    def speak_async(self, text: str) -> bool:
        if not self._engine:
            return False
        Thread(target=self._speak, args=(text,), daemon=True).start()
        return True

    def _speak(self, text: str) -> None:
        if not self._engine:
            return
        with self._lock:
            try:
                self._engine.say(text)
                self._engine.runAndWait()
            except Exception:  # pragma: no cover - engine runtime errors
                logger.error("pyttsx3 failed to speak text", exc_info=True)


class ConsoleDisplay:
    def __init__(self, speaker: Optional[LocalSpeaker] = None):
        self.speaker = speaker

    def show_ringing(self, label: str, time: str) -> None:
        print(f"\n*** {label} ({time}) ***  type 'snooze' or 'dismiss'")
        if self.speaker and self.speaker.available:
            self.speaker.speak_async(f"{label}. It is {time}.")

    def clear_ringing(self) -> None:
        print("Alarm stopped.")


def build_manager(config: Config, pa) -> AlarmManager:
    from audio_io import MicrophoneRecorder, get_input_device, output_opener

    capture = None
    try:
        device = get_input_device(pa, config.input_device_index)
        capture = MicrophoneRecorder(
            pa,
            device,
            target_rate=config.input_target_rate,
            max_seconds=config.max_record_seconds,
        )
    except OSError as exc:
        logger.warning("No usable input device, recording disabled: %s", exc)

    resolver = SoundResolver(
        output_opener(pa),
        tone_rate=config.output_target_rate,
        tone_hz=config.fallback_tone_hz,
        tone_ms=config.fallback_tone_ms,
        tone_gain=config.fallback_tone_gain,
    )
    speaker = LocalSpeaker() if config.announce_alarms else None
    return AlarmManager(
        store=AlarmStore(JsonFileStorage(config.alarms_path), default_duration=config.default_duration_s),
        sound_resolver=resolver,
        capture_service=capture,
        display=ConsoleDisplay(speaker),
        tick_interval=config.tick_interval_ms / 1000.0,
        snooze_minutes=config.default_snooze_min,
    )


def handle_command(manager: AlarmManager, line: str, pa=None) -> bool:
    """Run one console command. Returns False when the user asks to quit."""
    parts = shlex.split(line)
    if not parts:
        return True
    cmd, args = parts[0].lower(), parts[1:]

    if cmd in ("quit", "exit"):
        return False
    if cmd == "help":
        print(HELP)
    elif cmd == "list":
        alarms = manager.list_alarms()
        if not alarms:
            print("No alarms set.")
        for alarm in alarms:
            sound = "recording" if alarm.has_clip else "beep"
            print(f"{alarm.id}  {alarm.time}  {alarm.duration}s  {sound}  {alarm.label}")
    elif cmd == "add" and args:
        rest = args[1:]
        duration = rest.pop(0) if rest and rest[0].isdigit() else None
        label = " ".join(rest) or None
        alarm = manager.create_alarm(args[0], label=label, duration=duration)
        print(f"Alarm {alarm.id} set for {alarm.time}.")
    elif cmd == "label" and len(args) >= 2:
        manager.update_label(args[0], " ".join(args[1:]))
    elif cmd == "delete" and args:
        manager.delete_alarm(args[0])
    elif cmd == "record":
        manager.start_recording(args[0] if args else None)
        print("Recording... type 'stop' to finish.")
    elif cmd == "stop":
        result = manager.stop_recording()
        print("Recording saved." if result else "Nothing recorded.")
    elif cmd == "cancel":
        manager.cancel_recording()
    elif cmd == "discard":
        manager.discard_pending()
    elif cmd == "play" and args:
        if not manager.preview_sound(args[0]):
            print("That alarm has no recording.")
    elif cmd == "devices" and pa is not None:
        from audio_io import describe_devices

        print("\n".join(describe_devices(pa)))
    elif cmd == "snooze":
        if not manager.snooze():
            print("Nothing is ringing.")
    elif cmd == "dismiss":
        if not manager.dismiss():
            print("Nothing is ringing.")
    else:
        print(HELP)
    return True


def main() -> None:
    config = load_config()
    setup_logging(config.log_level, config.log_dir)
    signal.signal(signal.SIGINT, graceful_exit)
    logger.info("Starting alarm clock (storage=%s)", config.alarms_path)

    from audio_io import create_pyaudio  # needs the "audio" extra

    pa = create_pyaudio()
    manager = build_manager(config, pa)
    manager.start()
    print(HELP)
    try:
        while True:
            try:
                line = input("> ")
            except EOFError:
                break
            try:
                if not handle_command(manager, line, pa):
                    break
            except (AlarmError, ValueError) as exc:
                print(f"Error: {exc}")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        manager.shutdown()
        pa.terminate()


if __name__ == "__main__":
    main()
