from trawler.utils.formatting import (format_bytes, format_eta, format_speed,
                                      size_to_bytes)


def test_format_bytes():
    assert format_bytes(None) == "0 B"
    assert format_bytes(512) == "512.0 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(3 * 1024**3) == "3.0 GB"


def test_size_to_bytes():
    assert size_to_bytes("1.5 GB") == int(1.5 * 1024**3)
    assert size_to_bytes("700MB") == 700 * 1024**2
    assert size_to_bytes("2 tb") == 2 * 1024**4
    assert size_to_bytes("12 B") == 12
    assert size_to_bytes("huge") == 0
    assert size_to_bytes("1.2.3 GB") == 0
    assert size_to_bytes("") == 0
    assert size_to_bytes(None) == 0


def test_format_speed():
    assert format_speed(0) == "0 B/s"
    assert format_speed(None) == "0 B/s"
    assert format_speed(-5) == "0 B/s"
    assert format_speed(512) == "512.0 B/s"
    assert format_speed(5 * 1024**2) == "5.0 MB/s"
    assert format_speed(3 * 1024**4) == "3072.0 GB/s"


def test_format_eta():
    assert format_eta(100, 0) == "∞"
    assert format_eta(0, 100) == "∞"
    assert format_eta(450, 10) == "45s"
    assert format_eta(1500, 10) == "2m"
    assert format_eta(3600 * 25 + 60 * 7, 25) == "1h 0m"
    assert format_eta(7320, 1) == "2h 2m"
    assert format_eta(3599, 1) == "59m"
    assert format_eta(3570, 1) == "59m"
