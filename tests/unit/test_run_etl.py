import pytest
from scripts.run_etl import parse_args, run_etl


def test_parse_args():
    args = parse_args(["products.csv", "--batch-size", "50", "--no-outliers", "--dry-run"])

    assert args.source == "products.csv"
    assert args.batch_size == 50
    assert args.no_outliers is True
    assert args.no_insights is False
    assert args.dry_run is True
    assert args.log_level is None
    assert parse_args(["products.csv", "--log-level", "DEBUG"]).log_level == "DEBUG"


@pytest.mark.asyncio
async def test_dry_run_on_local_file(tmp_path, sample_csv):
    path = tmp_path / "products.csv"
    path.write_text(sample_csv)

    ok = await run_etl(parse_args([str(path), "--dry-run", "--batch-size", "4"]))

    assert ok is True
