"""Basic usage example for scan cleanup."""

import sys
from pathlib import Path

from scan_cleanup import CleanupPipeline
from scan_cleanup.config import Config
from scan_cleanup.processors import Override, Overrides, load_image, save_image


def main():
    """Clean one page twice: once automatically, once with a reviewer override."""
    if len(sys.argv) < 2:
        print("Usage: python basic_usage.py PAGE_IMAGE")
        return

    page_path = Path(sys.argv[1])

    # Create a custom configuration
    config = Config(
        cleanup={"speck_size_threshold": 20, "page_margins": (40, 60)},
        batch={"output_dir": "cleaned"},
    )
    pipeline = CleanupPipeline(config)

    print("Scan Cleanup - Example")
    print("=" * 40)

    image = load_image(page_path)
    analyzed = pipeline.analyze(image)
    print(f"Found {len(analyzed.graphemes)} graphemes")

    # Preview: removed specks painted magenta
    preview = pipeline.clean_analyzed(analyzed, cleanup=config.cleanup.preview())
    save_image(preview, Path("cleaned") / f"{page_path.stem}_preview.png")

    # Keep whatever sits in the middle of the page, whatever the rules say
    overrides = Overrides()
    if overrides.set_at(analyzed, analyzed.width // 2, analyzed.height // 2, Override.FORCE_KEEP):
        print("Marked the grapheme at the page centre as keep")

    cleaned = pipeline.clean_analyzed(analyzed, overrides=overrides)
    output_path = pipeline.output_path_for(page_path)
    save_image(cleaned, output_path)

    print(f"\nSuccess! Wrote {output_path}")
    print(f"Removal summary: {pipeline.cleaner.removal_summary()}")


if __name__ == "__main__":
    main()
