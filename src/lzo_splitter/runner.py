import argparse
import logging
import sys

from lzo_splitter.config import PipelineConfig, configure_logging
from lzo_splitter.errors import error_kind
from lzo_splitter.extractor_lzo import artifact_paths, download_and_decompress_lzo, load_index, measure_artifact
from lzo_splitter.processing.index_builder import build_index
from lzo_splitter.processing.index_format import write_index
from lzo_splitter.processing.index_summary import save_summary, summarize_index
from lzo_splitter.processing.split_reader import plan_splits
from lzo_splitter.uploading.batch import compress_and_push_directory
from lzo_splitter.uploading.storage import resolve_provider
from lzo_splitter.uploading.transfer import TMP_SUFFIX, run_pipeline

logger = logging.getLogger(__name__)

EXIT_CODES = {
    "unexpected": 1,
    "codec": 3,
    "corrupt_stream": 4,
    "malformed_index": 5,
    "io": 6,
    "cancelled": 130,
}


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description="Compress files into splittable LZO block streams with a sidecar index, "
                    "and read them back from local disk, HDFS or S3.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    index = commands.add_parser("index", help="Compress and index a file into <destination>.lzo(.index)")
    index.add_argument("source", help="Input file (local path, s3://bucket/key or hdfs://host:port/path)")
    index.add_argument("destination", help="Artifact base name, e.g. s3://mochi-trades/btc-1mF/trades.csv")
    index.add_argument("--interval", type=int, help="Blocks between index entries (env LZO_INDEX_INTERVAL)")
    index.add_argument("--block-size", type=int, help="Uncompressed bytes per block (env LZO_BLOCK_SIZE)")
    index.add_argument("--level", type=int, help="LZO compression level, 1 or 9 (env LZO_LEVEL)")

    scan = commands.add_parser("scan", help="Rebuild the index of an existing .lzo file")
    scan.add_argument("source", help="The .lzo file or its base name")
    scan.add_argument("--interval", type=int, default=1, help="Blocks between index entries")

    extract = commands.add_parser("extract", help="Decompress an artifact, or one split of it, to a local file")
    extract.add_argument("source", help="The .lzo file or its base name")
    extract.add_argument("output", help="Local output file")
    extract.add_argument("--split", type=int, help="Split number to decode")
    extract.add_argument("--num-splits", type=int, default=1, help="Number of splits to plan")

    splits = commands.add_parser("splits", help="Print a block-aligned split plan")
    splits.add_argument("source", help="The .lzo file or its base name")
    splits.add_argument("--num-splits", type=int, required=True, help="Number of splits to plan")

    summary = commands.add_parser("summary", help="Report the spans between index entries")
    summary.add_argument("source", help="The .lzo file or its base name")
    summary.add_argument("--output", help="Write the report as CSV instead of printing it")

    batch = commands.add_parser("batch", help="Index every file in a local directory")
    batch.add_argument("source_dir", help="Local directory of input files")
    batch.add_argument("destination", help="Destination prefix, e.g. s3://mochi-trades/btc-1mF")
    batch.add_argument("--interval", type=int, default=1, help="Blocks between index entries")
    batch.add_argument("--block-size", type=int, help="Uncompressed bytes per block")
    batch.add_argument("--workers", type=int, default=4, help="Files indexed concurrently")

    return parser.parse_args(argv)


def run_index(args) -> int:
    config = PipelineConfig.from_env(args.source, args.destination, index_interval=args.interval,
                                     block_size_hint=args.block_size, level=args.level)
    result = run_pipeline(config)
    if not result.ok:
        return EXIT_CODES.get(result.error_kind, 1)
    print(result.artifacts.data_uri)
    print(result.artifacts.index_uri)
    return 0


def run_scan(args) -> int:
    provider, path = resolve_provider(args.source)
    data_path, index_path = artifact_paths(path)
    with provider.open(data_path) as data:
        index = build_index(data, args.interval)
    tmp_path = index_path + TMP_SUFFIX
    try:
        with provider.create(tmp_path) as sink:
            write_index(index, sink)
        provider.rename(tmp_path, index_path)
    except BaseException:
        provider.delete(tmp_path)
        raise
    print(provider.uri(index_path))
    return 0


def run_extract(args) -> int:
    download_and_decompress_lzo(args.source, args.output, split_number=args.split, num_splits=args.num_splits)
    return 0


def run_splits(args) -> int:
    provider, path = resolve_provider(args.source)
    data_path, _ = artifact_paths(path)
    index = load_index(provider, data_path)
    for number, split in enumerate(plan_splits(index, provider.size(data_path), args.num_splits)):
        print(f"{number}\t{split.start}\t{split.end}\t{split.uncompressed_start}")
    return 0


def run_summary(args) -> int:
    provider, path = resolve_provider(args.source)
    data_path, _ = artifact_paths(path)
    index = load_index(provider, data_path)
    with provider.open(data_path) as data:
        compressed_size, uncompressed_size = measure_artifact(data)
    df = summarize_index(index, compressed_size, uncompressed_size)
    if args.output:
        save_summary(df, args.output)
    else:
        print(df.to_string(index=False))
    return 0


def run_batch(args) -> int:
    provider, prefix = resolve_provider(args.destination)
    results = compress_and_push_directory(args.source_dir, provider, prefix, index_interval=args.interval,
                                          block_size_hint=args.block_size, max_workers=args.workers)
    failed = [r for r in results.values() if not r.ok]
    if failed:
        logger.error("%d of %d files failed", len(failed), len(results))
        return EXIT_CODES.get(failed[0].error_kind, 1)
    return 0


COMMANDS = {
    "index": run_index,
    "scan": run_scan,
    "extract": run_extract,
    "splits": run_splits,
    "summary": run_summary,
    "batch": run_batch,
}


def main(argv=None) -> int:
    args = parse_arguments(argv)
    configure_logging(args.verbose)
    try:
        return COMMANDS[args.command](args)
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return EXIT_CODES["cancelled"]
    except ValueError as e:
        logger.error("%s: %s", args.command, e)
        return 2
    except Exception as e:
        kind = error_kind(e)
        logger.error("%s failed (%s): %s", args.command, kind, e, exc_info=kind == "unexpected")
        return EXIT_CODES.get(kind, 1)


if __name__ == "__main__":
    sys.exit(main())
