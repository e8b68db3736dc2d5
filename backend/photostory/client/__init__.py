from photostory.client.encoder import LocalStreamingEncoder, StreamingEncoder
from photostory.client.exporter import ExportState, PreviewExporter
from photostory.client.scene import PreviewFrame, PreviewTiming, preview_frame

__all__ = [
    "LocalStreamingEncoder",
    "StreamingEncoder",
    "ExportState",
    "PreviewExporter",
    "PreviewFrame",
    "PreviewTiming",
    "preview_frame",
]
