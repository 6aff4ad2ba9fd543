"""HLS pipeline: storage-triggered adaptive-bitrate transcoding."""

__version__ = "0.1.0"
