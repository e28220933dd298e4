def test_encode_and_decode_roundtrip(sample_file, tmp_path, no_progress, m, capsys):
    enc = tmp_path / "sample.huff"
    dec = tmp_path / "sample.out"
    assert m.encode_path(str(sample_file), str(enc), hide_progress=False) == 0
    assert enc.stat().st_size < sample_file.stat().st_size
    assert "Compression ratio" in capsys.readouterr().out

    assert m.decode_path(str(enc), str(dec), hide_progress=False) == 0
    assert dec.read_bytes() == sample_file.read_bytes()
    assert no_progress


def test_main_entry_point(sample_file, tmp_path, m):
    enc = tmp_path / "sample.huff"
    dec = tmp_path / "sample.out"
    assert m.main(["-q", "e", str(sample_file), "-o", str(enc), "-P"]) == 0
    assert m.main(["-q", "d", str(enc), "-o", str(dec), "-P"]) == 0
    assert dec.read_bytes() == sample_file.read_bytes()


def test_empty_file_roundtrip(tmp_path, m):
    src = tmp_path / "empty"
    src.write_bytes(b"")
    enc = tmp_path / "empty.huff"
    dec = tmp_path / "empty.out"
    assert m.encode_path(str(src), str(enc), hide_progress=True) == 0
    assert enc.read_bytes() == b""
    assert m.decode_path(str(enc), str(dec), hide_progress=True) == 0
    assert dec.read_bytes() == b""


def test_missing_input_reports_error(tmp_path, m, capsys):
    out = tmp_path / "out"
    assert m.encode_path(str(tmp_path / "nope"), str(out), True) == 1
    assert m.decode_path(str(tmp_path / "nope"), str(out), True) == 1
    assert "[!]" in capsys.readouterr().out
    assert not out.exists()


def test_corrupt_input_removes_partial_output(sample_file, tmp_path, m, capsys):
    enc = tmp_path / "sample.huff"
    dec = tmp_path / "sample.out"
    m.encode_path(str(sample_file), str(enc), hide_progress=True)
    enc.write_bytes(enc.read_bytes()[:-1])

    assert m.decode_path(str(enc), str(dec), hide_progress=True) == 1
    assert "Corrupt input" in capsys.readouterr().out
    assert not dec.exists()
