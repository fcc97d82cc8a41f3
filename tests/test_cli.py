import io

import pikepdf

from compact_pdf import main, parse_args


def test_parse_args_defaults(tmp_path):
    args = parse_args([str(tmp_path / "in.pdf")])

    assert args.quality == 75
    assert args.level == "medium"
    assert args.preserve_quality is False


def test_compress_single_file(tmp_path, rich_pdf_bytes):
    source = tmp_path / "report.pdf"
    source.write_bytes(rich_pdf_bytes)
    target = tmp_path / "small.pdf"

    code = main([str(source), "-o", str(target), "--level", "high", "-q", "30"])

    assert code == 0
    with pikepdf.open(io.BytesIO(target.read_bytes())) as pdf:
        assert len(pdf.pages) == 1


def test_default_output_name(tmp_path, rich_pdf_bytes):
    source = tmp_path / "report.pdf"
    source.write_bytes(rich_pdf_bytes)

    assert main([str(source)]) == 0
    assert (tmp_path / "report_compressed.pdf").exists()


def test_broken_input_writes_nothing(tmp_path, capsys):
    source = tmp_path / "broken.pdf"
    source.write_bytes(b"not a pdf at all")
    target = tmp_path / "out.pdf"

    assert main([str(source), "-o", str(target)]) == 1
    assert not target.exists()
    assert "Error:" in capsys.readouterr().err


def test_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "nope.pdf")]) == 1
    assert "File not found" in capsys.readouterr().err


def test_out_of_range_quality(tmp_path, rich_pdf_bytes, capsys):
    source = tmp_path / "report.pdf"
    source.write_bytes(rich_pdf_bytes)

    assert main([str(source), "-q", "150"]) == 1
    assert "Quality" in capsys.readouterr().err


def test_unreadable_input_does_not_stop_batch(tmp_path, rich_pdf_bytes, capsys):
    good = tmp_path / "good.pdf"
    good.write_bytes(rich_pdf_bytes)
    unreadable = tmp_path / "folder.pdf"
    unreadable.mkdir()
    out_dir = tmp_path / "out"

    code = main([str(unreadable), str(good), "--output-dir", str(out_dir)])

    assert code == 1
    assert (out_dir / "good_compressed.pdf").exists()
    assert not (out_dir / "folder_compressed.pdf").exists()
    assert "Could not read" in capsys.readouterr().err
