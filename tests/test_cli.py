from webp_recompress import cli
from webp_recompress.search import RecompressResult


def test_collect_inputs_expands_folders(tmp_path):
    for name in ["b.jpg", "a.PNG", "c.jpeg", "notes.txt", "anim.gif"]:
        (tmp_path / name).write_bytes(b"x")
    extra = tmp_path / "single.jpg"

    inputs = cli.collect_inputs([str(tmp_path), str(extra)])

    assert inputs == [
        str(tmp_path / "a.PNG"),
        str(tmp_path / "b.jpg"),
        str(tmp_path / "c.jpeg"),
        str(tmp_path / "single.jpg"),
    ]


def test_parse_args_defaults():
    args = cli.parse_args(["photo.jpg"])

    assert args.inputs == ["photo.jpg"]
    assert args.threshold == 0.02
    assert args.threshold_multiplier == 1.5
    assert args.start == 75
    assert args.max_relaxations == cli.DEFAULT_MAX_RELAXATIONS
    assert not args.quiet and not args.verbose


def test_main_requires_cwebp(monkeypatch, capsys):
    monkeypatch.setattr(cli, "is_tool_installed", lambda name: False)

    assert cli.main(["photo.jpg"]) == 1
    assert "cwebp" in capsys.readouterr().err


def test_main_recompresses_each_input_and_summarises(monkeypatch, capsys):
    seen = []

    def fake_recompress(input_path, **kwargs):
        seen.append((input_path, kwargs))
        if input_path == "bad.jpg":
            return RecompressResult(False, "Couldn't run image trial: boom")
        return RecompressResult(True, "Candidate found at q70: 2.0 KB -> 1.0 KB",
                                quality=70, input_size=2048, output_size=1024)

    monkeypatch.setattr(cli, "is_tool_installed", lambda name: True)
    monkeypatch.setattr(cli, "webp_recompress", fake_recompress)

    status = cli.main(["a.jpg", "bad.jpg", "--threshold", "0.03", "--start", "60"])

    assert status == 1
    assert [path for path, _ in seen] == ["a.jpg", "bad.jpg"]
    assert seen[0][1]["threshold"] == 0.03
    assert seen[0][1]["start"] == 60
    captured = capsys.readouterr()
    assert "Candidate found at q70" in captured.out
    assert "Images recompressed: 1" in captured.out
    assert "Total size savings: 1.0 KiB" in captured.out
    assert "bad.jpg: Couldn't run image trial: boom" in captured.err


def test_main_succeeds_quietly(monkeypatch, capsys):
    monkeypatch.setattr(cli, "is_tool_installed", lambda name: True)
    monkeypatch.setattr(cli, "webp_recompress",
                        lambda path, **kwargs: RecompressResult(True, "ok", input_size=10, output_size=5))

    assert cli.main(["a.jpg", "--quiet"]) == 0
    assert capsys.readouterr().out == ""
