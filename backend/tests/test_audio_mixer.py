"""
Tests for audio mixing.

Test cases:
1. Silence when there is nothing to mix
2. Single track filter graph
3. Multiple tracks mixed with amix
4. Fades, volume and offsets
5. Track collection from a composition
6. Real mix through ffmpeg (skipped without the binary)
"""

import subprocess
from pathlib import Path

import pytest

from photostory.render.audio_mixer import AudioClipData, AudioMixer, AudioTrackData, build_audio_tracks
from photostory.render.composition import StoryComposition
from photostory.schemas.project import AudioConfig, NarrationConfig, NarrationSegment
from photostory.schemas.theme import Theme

THEME = Theme(id="t", name="T")


@pytest.fixture
def mixer() -> AudioMixer:
    return AudioMixer(ffmpeg_path="ffmpeg", sample_rate=48000)


def _filter_graph(cmd: list[str]) -> str:
    return cmd[cmd.index("-filter_complex") + 1]


class TestBuildCommand:
    """Command construction without running ffmpeg."""

    def test_no_tracks_renders_silence(self, mixer: AudioMixer):
        cmd = mixer.build_command([], "out.wav", duration_ms=5000)

        assert "anullsrc=r=48000:cl=stereo:d=5.0" in cmd
        assert cmd[-1] == "out.wav"

    def test_tracks_without_clips_render_silence(self, mixer: AudioMixer):
        cmd = mixer.build_command([AudioTrackData(track_type="bgm", clips=[])], "out.wav", duration_ms=1000)

        assert "-filter_complex" not in cmd

    def test_single_track(self, mixer: AudioMixer):
        track = AudioTrackData(
            track_type="narration",
            clips=[AudioClipData(file_path="voice.mp3", start_ms=0, duration_ms=3000)],
        )

        cmd = mixer.build_command([track], "out.wav", duration_ms=3000)

        graph = _filter_graph(cmd)
        assert "[0:a]atrim=start=0.0:end=3.0,asetpts=PTS-STARTPTS[track0_clip0]" in graph
        assert "amix" not in graph
        assert graph.endswith("[track0_clip0]loudnorm=I=-16:TP=-1.5:LRA=11[out]")
        assert cmd[cmd.index("-t") + 1] == "3.0"
        assert cmd[cmd.index("-c:a") + 1] == "pcm_s16le"

    def test_multiple_tracks_are_mixed(self, mixer: AudioMixer):
        bgm = AudioTrackData(
            track_type="bgm",
            volume=0.5,
            clips=[AudioClipData(file_path="song.mp3", start_ms=0, duration_ms=10000, loop=True)],
        )
        narration = AudioTrackData(
            track_type="narration",
            clips=[AudioClipData(file_path="voice.mp3", start_ms=2000, duration_ms=3000)],
        )

        cmd = mixer.build_command([bgm, narration], "out.wav", duration_ms=10000)

        assert cmd[cmd.index("-stream_loop") + 1] == "-1"
        graph = _filter_graph(cmd)
        assert "[track0_clip0_pre]volume=0.5[track0_clip0]" in graph
        assert "[track0_clip0][track1_clip0]amix=inputs=2:duration=longest:normalize=0[mixed]" in graph
        assert "[mixed]loudnorm" in graph

    def test_clip_effects(self, mixer: AudioMixer):
        track = AudioTrackData(
            track_type="audio",
            clips=[
                AudioClipData(
                    file_path="sfx.wav",
                    start_ms=1500,
                    duration_ms=4000,
                    in_point_ms=500,
                    volume=0.8,
                    fade_in_ms=1000,
                    fade_out_ms=2000,
                )
            ],
        )

        graph = _filter_graph(mixer.build_command([track], "out.wav", duration_ms=6000))

        assert "atrim=start=0.5:end=4.5" in graph
        assert "volume=0.8" in graph
        assert "afade=t=in:st=0:d=1.0" in graph
        assert "afade=t=out:st=2.0:d=2.0" in graph
        assert "adelay=72000S:all=1" in graph

    def test_several_clips_on_one_track_are_combined(self, mixer: AudioMixer):
        track = AudioTrackData(
            track_type="narration",
            clips=[
                AudioClipData(file_path="a.mp3", start_ms=0, duration_ms=1000),
                AudioClipData(file_path="b.mp3", start_ms=2000, duration_ms=1000),
            ],
        )

        graph = _filter_graph(mixer.build_command([track], "out.wav", duration_ms=3000))

        assert "[track0_clip0][track0_clip1]amix=inputs=2:duration=longest:normalize=0[track0_combined]" in graph
        assert "[track0_combined]loudnorm" in graph


class TestBuildAudioTracks:
    def test_bgm_loops_for_the_whole_video(self, make_project):
        project = make_project(photo_count=3, audio=AudioConfig(bgm_resource_id="song.mp3", volume=0.4))

        (bgm,) = build_audio_tracks(StoryComposition(project, THEME), {"song.mp3": "/tmp/song.mp3"})

        assert bgm.track_type == "bgm"
        assert bgm.volume == 0.4
        (clip,) = bgm.clips
        assert clip.loop
        assert clip.duration_ms == 5000
        assert clip.fade_in_ms == 2000

    def test_narration_is_offset_by_the_intro(self, make_project):
        project = make_project(
            photo_count=3,
            narration=NarrationConfig(segments=[NarrationSegment(resource_id="voice.mp3", start_time=0.5, end_time=1.5)]),
        )

        (narration,) = build_audio_tracks(StoryComposition(project, THEME), {"voice.mp3": "/tmp/voice.mp3"})

        (clip,) = narration.clips
        assert clip.start_ms == 1500
        assert clip.duration_ms == 1000
        assert clip.file_path == "/tmp/voice.mp3"

    def test_missing_assets_are_skipped(self, make_project):
        project = make_project(audio=AudioConfig(bgm_resource_id="song.mp3"))

        assert build_audio_tracks(StoryComposition(project, THEME), {}) == []


@pytest.mark.requires_ffmpeg
class TestMixTracks:
    """Runs ffmpeg against a generated tone."""

    @pytest.fixture
    def tone(self, tmp_path: Path) -> Path:
        path = tmp_path / "tone.wav"
        subprocess.run(
            ["ffmpeg", "-y", "-f", "lavfi", "-i", "sine=frequency=440:duration=2", str(path)],
            capture_output=True,
            check=True,
        )
        return path

    def test_mix_single_track(self, mixer: AudioMixer, tone: Path, tmp_path: Path):
        track = AudioTrackData(
            track_type="narration",
            clips=[AudioClipData(file_path=str(tone), start_ms=500, duration_ms=1500, fade_in_ms=200)],
        )
        output = tmp_path / "mixed.wav"

        result = mixer.mix_tracks([track], str(output), duration_ms=2000)

        assert Path(result).exists()
        assert Path(result).stat().st_size > 0

    def test_silence(self, mixer: AudioMixer, tmp_path: Path):
        output = tmp_path / "silence.wav"

        mixer.mix_tracks([], str(output), duration_ms=1000)

        assert output.stat().st_size > 0
