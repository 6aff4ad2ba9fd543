"""HLS master playlist assembly."""

from hls_pipeline.modules.transcoding.renditions import RenditionPlan

MASTER_PLAYLIST_NAME = "master.m3u8"
HLS_VERSION = 3


def render_master_playlist(plans: list[RenditionPlan]) -> str:
    """Render the master playlist listing every rendition in catalog order.

    Args:
        plans: Rendition plans, in catalog order

    Returns:
        Playlist text
    """
    lines = ["#EXTM3U", f"#EXT-X-VERSION:{HLS_VERSION}"]
    for plan in plans:
        lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={plan.bandwidth},RESOLUTION={plan.resolution}")
        lines.append(plan.playlist_path)
    return "\n".join(lines) + "\n"
