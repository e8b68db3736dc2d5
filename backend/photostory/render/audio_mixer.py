"""
Audio mixing using FFmpeg.

This module handles:
- Background music spanning the whole video (looped, faded in/out)
- Narration and audio-track clips positioned on the output timeline
- Volume control per clip and per track
- Loudness normalization of the final mix

The mix is written as PCM WAV; the video encoder picks the delivery codec.
"""

import logging
import subprocess
from dataclasses import dataclass

from photostory.config import get_settings
from photostory.exceptions import EncoderError
from photostory.render.composition import StoryComposition

logger = logging.getLogger(__name__)


@dataclass
class AudioClipData:
    """Audio clip data for mixing."""

    file_path: str
    start_ms: int
    duration_ms: int
    in_point_ms: int = 0
    volume: float = 1.0
    fade_in_ms: int = 0
    fade_out_ms: int = 0
    loop: bool = False


@dataclass
class AudioTrackData:
    """Audio track data for mixing."""

    track_type: str  # bgm, narration, audio
    volume: float = 1.0
    clips: list[AudioClipData] | None = None


def build_audio_tracks(composition: StoryComposition, assets: dict[str, str]) -> list[AudioTrackData]:
    """Audio tracks for a composition, positioned on the output timeline.

    Clips whose resource was not fetched are skipped.
    """
    tracks: list[AudioTrackData] = []
    total_ms = int(round(composition.duration * 1000))

    audio = composition.project.audio
    if audio and audio.bgm_resource_id and audio.bgm_resource_id in assets:
        tracks.append(
            AudioTrackData(
                track_type="bgm",
                volume=audio.volume,
                clips=[
                    AudioClipData(
                        file_path=assets[audio.bgm_resource_id],
                        start_ms=0,
                        duration_ms=total_ms,
                        fade_in_ms=int(audio.fade_in * 1000),
                        fade_out_ms=int(audio.fade_out * 1000),
                        loop=True,
                    )
                ],
            )
        )

    offset_ms = int(round(composition.story_start * 1000))
    for track in composition.timeline.tracks:
        if not track.is_audio or track.muted:
            continue
        clips = [
            AudioClipData(
                file_path=assets[clip.resource_id],
                start_ms=offset_ms + int(round(clip.start_time * 1000)),
                duration_ms=int(round(clip.duration * 1000)),
                in_point_ms=int(round(clip.properties.source_offset * 1000)),
                volume=clip.properties.volume,
                fade_in_ms=int(clip.properties.fade_in * 1000),
                fade_out_ms=int(clip.properties.fade_out * 1000),
            )
            for clip in track.clips
            if clip.resource_id in assets
        ]
        if clips:
            tracks.append(AudioTrackData(track_type=track.type, volume=track.volume, clips=clips))
    return tracks


class AudioMixer:
    """
    FFmpeg-based audio mixer.

    Each clip is trimmed, faded, volume-scaled and delayed into place; tracks
    are mixed with amix and the result loudness-normalized.
    """

    def __init__(self, ffmpeg_path: str | None = None, sample_rate: int | None = None):
        settings = get_settings()
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.sample_rate = sample_rate or settings.render_audio_sample_rate

    def build_command(self, tracks: list[AudioTrackData], output_path: str, duration_ms: int) -> list[str]:
        active_tracks = [t for t in tracks if t.clips]
        if not active_tracks:
            return self._silence_command(output_path, duration_ms)

        inputs: list[str] = []
        filter_parts: list[str] = []
        input_index = 0
        track_outputs: list[str] = []

        for idx, track in enumerate(active_tracks):
            track_filter, track_output, input_index = self._build_track_filter(
                track, input_index, inputs, f"track{idx}"
            )
            filter_parts.append(track_filter)
            track_outputs.append(track_output)

        if len(track_outputs) == 1:
            final_output = track_outputs[0]
        else:
            mix_input_str = "".join(f"[{o}]" for o in track_outputs)
            filter_parts.append(
                f"{mix_input_str}amix=inputs={len(track_outputs)}:duration=longest:normalize=0[mixed]"
            )
            final_output = "mixed"

        filter_parts.append(f"[{final_output}]loudnorm=I=-16:TP=-1.5:LRA=11[out]")
        filter_complex = ";\n".join(filter_parts)

        return [
            self.ffmpeg_path,
            "-y",
            *inputs,
            "-filter_complex",
            filter_complex,
            "-map",
            "[out]",
            "-t",
            str(duration_ms / 1000),
            "-c:a",
            "pcm_s16le",
            "-ar",
            str(self.sample_rate),
            output_path,
        ]

    def mix_tracks(self, tracks: list[AudioTrackData], output_path: str, duration_ms: int) -> str:
        """
        Mix audio tracks into a WAV file covering duration_ms.

        Args:
            tracks: List of audio tracks to mix
            output_path: Output file path
            duration_ms: Total duration in milliseconds

        Returns:
            Path to the mixed audio file
        """
        logger.info(f"[AUDIO MIX] Processing {len([t for t in tracks if t.clips])} active tracks")
        cmd = self.build_command(tracks, output_path, duration_ms)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise EncoderError(f"ffmpeg not found: {self.ffmpeg_path}") from e
        if result.returncode != 0:
            raise EncoderError(f"FFmpeg audio mixing failed: {result.stderr[-2000:]}")
        return output_path

    def _build_track_filter(
        self,
        track: AudioTrackData,
        start_index: int,
        inputs: list[str],
        track_name: str,
    ) -> tuple[str, str, int]:
        """Build FFmpeg filter for a single track."""
        clip_outputs = []
        current_index = start_index

        for i, clip in enumerate(track.clips or []):
            if clip.loop:
                inputs.extend(["-stream_loop", "-1"])
            inputs.extend(["-i", clip.file_path])

            clip_filter_parts = []
            start_s = clip.in_point_ms / 1000
            end_s = (clip.in_point_ms + clip.duration_ms) / 1000
            clip_filter_parts.append(f"atrim=start={start_s}:end={end_s}")
            clip_filter_parts.append("asetpts=PTS-STARTPTS")

            if clip.volume != 1.0:
                clip_filter_parts.append(f"volume={clip.volume}")
            if clip.fade_in_ms > 0:
                clip_filter_parts.append(f"afade=t=in:st=0:d={clip.fade_in_ms / 1000}")
            if clip.fade_out_ms > 0:
                fade_start = max(0, clip.duration_ms - clip.fade_out_ms) / 1000
                clip_filter_parts.append(f"afade=t=out:st={fade_start}:d={clip.fade_out_ms / 1000}")
            if clip.start_ms > 0:
                delay_samples = int(clip.start_ms * self.sample_rate / 1000)
                clip_filter_parts.append(f"adelay={delay_samples}S:all=1")

            clip_output = f"{track_name}_clip{i}"
            filter_str = f"[{current_index}:a]" + ",".join(clip_filter_parts) + f"[{clip_output}]"
            clip_outputs.append((filter_str, clip_output))
            current_index += 1

        if len(clip_outputs) == 1:
            filter_str, track_output = clip_outputs[0]
            if track.volume != 1.0:
                filter_str = filter_str.replace(f"[{track_output}]", f"[{track_output}_pre]")
                filter_str += f";\n[{track_output}_pre]volume={track.volume}[{track_output}]"
            return filter_str, track_output, current_index

        filters = [f for f, _ in clip_outputs]
        outputs = [o for _, o in clip_outputs]
        track_output = f"{track_name}_combined"

        output_str = "".join(f"[{o}]" for o in outputs)
        combine_filter = f"{output_str}amix=inputs={len(outputs)}:duration=longest:normalize=0[{track_output}_pre]"
        if track.volume != 1.0:
            combine_filter += f";\n[{track_output}_pre]volume={track.volume}[{track_output}]"
        else:
            combine_filter = combine_filter.replace(f"[{track_output}_pre]", f"[{track_output}]")

        full_filter = ";\n".join(filters) + ";\n" + combine_filter
        return full_filter, track_output, current_index

    def _silence_command(self, output_path: str, duration_ms: int) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-f",
            "lavfi",
            "-i",
            f"anullsrc=r={self.sample_rate}:cl=stereo:d={duration_ms / 1000}",
            "-c:a",
            "pcm_s16le",
            output_path,
        ]
