"""Transcoding module: rendition planning, encoding and the HLS job."""
