"""
Voice and text journal package.

Modules:
- audio_capture: capture session state machine and device interfaces.
- microphone: sounddevice-backed microphone device.
- transcription: remote speech-to-text service.
- store: durable SQLite entry storage.
- grouping: date bucketing and display labels.
- journal: controller tying capture, transcription and storage together.
- app: command line entry point.
"""
