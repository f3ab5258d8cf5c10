"""End-to-end tests for the scan cleanup pipeline."""

import threading

import cv2
import numpy as np
import pytest

from scan_cleanup import BatchResult, CleanupPipeline
from scan_cleanup.config import CleanupConfig, Config
from scan_cleanup.exceptions import DirectoryError, InvalidImageError
from scan_cleanup.pipeline import main
from scan_cleanup.processors import (
    RemovalReason,
    analyze_image,
    classify_graphemes,
    clean_image,
    load_image,
)

MAGENTA = (255, 0, 255)


def _config(**batch) -> Config:
    return Config(batch=batch, logging={"level": "WARNING", "use_rich": False})


class TestScenarios:
    def test_blank_page_becomes_background_color(self, blank_page):
        image = blank_page(100, 80)
        cleaned = clean_image(image, cleanup=CleanupConfig(background_fill_color=(10, 20, 30)))

        assert analyze_image(image).graphemes == []
        assert cleaned.shape == image.shape
        assert (cleaned == (10, 20, 30)).all()

    def test_cluster_in_margin_is_removed(self, blank_page):
        image = blank_page(200, 200)
        image[10, 10:15] = 0
        cleanup = CleanupConfig(speck_size_threshold=0, speck_fill_color=MAGENTA)

        analyzed = analyze_image(image)
        [result] = classify_graphemes(analyzed, cleanup)
        cleaned = clean_image(image, cleanup=cleanup)

        assert analyzed.graphemes[0].size == 5
        assert result.reason == RemovalReason.INSIDE_MARGINS
        assert (cleaned[10, 10:15] == MAGENTA).all()

    def test_small_cluster_near_large_one_survives(self, blank_page, draw_block):
        image = blank_page(400, 400)
        draw_block(image, 100, 100, 10, 10)
        draw_block(image, 130, 130, 5, 4)

        results = classify_graphemes(analyze_image(image), CleanupConfig())

        assert [r.reason for r in results] == [RemovalReason.KEPT, RemovalReason.KEPT]
        np.testing.assert_array_equal(clean_image(image), image)

    def test_small_cluster_far_from_large_one_is_removed(self, blank_page, draw_block):
        image = blank_page(400, 400)
        draw_block(image, 100, 100, 10, 10)
        draw_block(image, 180, 180, 5, 4)

        results = classify_graphemes(analyze_image(image), CleanupConfig())

        assert [r.reason for r in results] == [RemovalReason.KEPT, RemovalReason.ISOLATED]
        cleaned = clean_image(image)
        assert (cleaned[180:184, 180:185] == 255).all()

    def test_two_small_clusters_do_not_anchor_each_other(self, blank_page, draw_block):
        image = blank_page(200, 200)
        draw_block(image, 60, 60, 5, 4)
        draw_block(image, 130, 130, 5, 4)

        results = classify_graphemes(analyze_image(image), CleanupConfig())

        assert [r.reason for r in results] == [RemovalReason.ISOLATED, RemovalReason.ISOLATED]
        assert (clean_image(image) == 255).all()


class TestCleanupPipeline:
    def test_text_survives_and_specks_go(self, sample_page, speck_regions, sample_config):
        text_only = np.full_like(sample_page, 255)
        cv2.putText(text_only, "HELLO", (70, 120), cv2.FONT_HERSHEY_SIMPLEX, 2.0,
                    (0, 0, 0), 4, cv2.LINE_8)
        text = text_only[:, :, 0] == 0

        cleaned = CleanupPipeline(sample_config).clean(sample_page)

        assert (cleaned[text] == 0).all()
        for rows, cols in speck_regions:
            assert (cleaned[rows, cols] == 255).all()

    def test_cleanup_thresholds_change_without_reanalysis(self, sample_page, sample_config):
        pipeline = CleanupPipeline(sample_config)
        analyzed = pipeline.analyze(sample_page)

        normal = pipeline.clean_analyzed(analyzed)
        preview = pipeline.clean_analyzed(analyzed, cleanup=sample_config.cleanup.preview())

        assert tuple(normal[100, 300]) == (255, 255, 255)
        assert tuple(preview[100, 300]) == MAGENTA

    def test_greyscale_input(self, sample_page, sample_config):
        grey = cv2.cvtColor(sample_page, cv2.COLOR_RGB2GRAY)
        cleaned = CleanupPipeline(sample_config).clean(grey)
        assert cleaned.shape == sample_page.shape

    def test_empty_image_raises(self, sample_config):
        with pytest.raises(InvalidImageError):
            CleanupPipeline(sample_config).clean(np.zeros((0, 10, 3), dtype=np.uint8))

    def test_process_image_to_output_dir(self, temp_dir, test_image_files):
        out_dir = temp_dir / "out"
        pipeline = CleanupPipeline(_config(output_dir=str(out_dir), output_suffix="_clean"))

        output_path = pipeline.process_image(test_image_files[0])

        assert output_path == out_dir / "page_001_clean.png"
        expected = pipeline.clean(load_image(test_image_files[0]))
        np.testing.assert_array_equal(load_image(output_path), expected)

    def test_process_image_overwrites_in_place(self, test_image_files):
        path = test_image_files[0]
        before = load_image(path)

        output_path = CleanupPipeline(_config()).process_image(path)

        assert output_path == path
        after = load_image(path)
        assert after.shape == before.shape
        assert not np.array_equal(after, before)

    def test_debug_images(self, temp_dir, test_image_files):
        debug_dir = temp_dir / "debug"
        pipeline = CleanupPipeline(_config(output_dir=str(temp_dir / "out"),
                                           save_debug_images=True,
                                           debug_dir=str(debug_dir)))

        pipeline.process_image(test_image_files[0])

        assert (debug_dir / "page_001_background_mask.png").exists()
        assert (debug_dir / "page_001_classification_overlay.png").exists()


class TestBatch:
    def test_process_directory(self, temp_dir, test_image_files):
        out_dir = temp_dir / "out"
        calls = []
        pipeline = CleanupPipeline(_config(output_dir=str(out_dir)))

        result = pipeline.process_directory(
            temp_dir / "input",
            progress=lambda done, total: calls.append((done, total)),
            show_progress=False,
        )

        assert isinstance(result, BatchResult)
        assert result.total == 3
        assert len(result.successful) == 3
        assert not result.failed and not result.cancelled
        assert [p.input_path for p in result.pages] == test_image_files
        assert result.output_paths == [out_dir / p.name for p in test_image_files]
        assert calls == [(1, 3), (2, 3), (3, 3)]

        summary = result.pages[0].removal_summary
        assert summary[RemovalReason.ISOLATED.value] == 1
        assert summary[RemovalReason.INSIDE_MARGINS.value] == 1
        assert summary[RemovalReason.TOO_SMALL.value] == 2

    def test_failed_page_does_not_stop_batch(self, temp_dir, test_image_files):
        corrupt = temp_dir / "input" / "page_000.png"
        corrupt.write_bytes(b"not an image")
        pipeline = CleanupPipeline(_config(output_dir=str(temp_dir / "out")))

        result = pipeline.run_batch([corrupt] + test_image_files, show_progress=False)

        assert result.total == 4
        assert [p.input_path for p in result.failed] == [corrupt]
        assert "ImageLoadError" in result.failed[0].error
        assert len(result.successful) == 3

    def test_cancel_between_pages(self, temp_dir, test_image_files):
        cancel = threading.Event()
        pipeline = CleanupPipeline(_config(output_dir=str(temp_dir / "out")))

        result = pipeline.run_batch(
            test_image_files,
            progress=lambda done, total: cancel.set(),
            cancel=cancel,
            show_progress=False,
        )

        assert len(result.successful) == 1
        assert [p.input_path for p in result.cancelled] == test_image_files[1:]
        assert not (temp_dir / "out" / "page_002.png").exists()

    def test_parallel_cancel_finishes_running_pages(self, temp_dir, test_image_files):
        out_dir = temp_dir / "out"
        cancel = threading.Event()
        pipeline = CleanupPipeline(_config(output_dir=str(out_dir)))

        result = pipeline.run_batch(
            test_image_files,
            parallel=True,
            max_workers=2,
            progress=lambda done, total: cancel.set(),
            cancel=cancel,
            show_progress=False,
        )

        # Two pages were handed to the two workers before the cancel
        assert [p.input_path for p in result.successful] == test_image_files[:2]
        assert [p.input_path for p in result.cancelled] == test_image_files[2:]
        written = {p.name for p in out_dir.glob("*.png")}
        assert written == {p.name for p in test_image_files[:2]}
        for page in result.successful:
            np.testing.assert_array_equal(
                load_image(page.output_path),
                pipeline.clean(load_image(page.input_path)),
            )

    def test_parallel_cancel_leaves_originals_intact(self, test_image_files):
        cancel = threading.Event()
        originals = {p: p.read_bytes() for p in test_image_files}

        result = CleanupPipeline(_config()).run_batch(
            test_image_files,
            parallel=True,
            max_workers=2,
            progress=lambda done, total: cancel.set(),
            cancel=cancel,
            show_progress=False,
        )

        assert len(result.successful) == 2
        assert len(result.cancelled) == 1
        for page in result.cancelled:
            assert page.input_path.read_bytes() == originals[page.input_path]
        for page in result.successful:
            assert load_image(page.input_path).shape == (200, 400, 3)

    def test_parallel_batch(self, temp_dir, test_image_files):
        out_dir = temp_dir / "out"
        pipeline = CleanupPipeline(_config(output_dir=str(out_dir)))

        result = pipeline.run_batch(test_image_files, parallel=True, max_workers=2,
                                    show_progress=False)

        assert len(result.successful) == 3
        assert [p.input_path for p in result.pages] == test_image_files
        sequential = CleanupPipeline(_config()).clean(load_image(test_image_files[1]))
        np.testing.assert_array_equal(load_image(out_dir / "page_002.png"), sequential)

    def test_missing_directory(self, temp_dir):
        with pytest.raises(DirectoryError):
            CleanupPipeline(_config()).process_directory(temp_dir / "nope")

    def test_empty_directory(self, temp_dir):
        result = CleanupPipeline(_config()).process_directory(temp_dir, show_progress=False)
        assert result.total == 0

    def test_empty_batch(self):
        assert CleanupPipeline(_config()).run_batch([]).total == 0


class TestCommandLine:
    def test_directory(self, temp_dir, test_image_files):
        out_dir = temp_dir / "out"
        code = main([str(temp_dir / "input"), "-o", str(out_dir), "--quiet"])

        assert code == 0
        assert sorted(p.name for p in out_dir.glob("*.png")) == [p.name for p in test_image_files]

    def test_threshold_options(self, temp_dir, test_image_files):
        out_dir = temp_dir / "out"
        code = main([str(test_image_files[0]), "-o", str(out_dir), "--quiet",
                     "--speck-size", "3", "--margins", "0", "0", "--isolation-size", "0"])

        assert code == 0
        cleaned = load_image(out_dir / "page_001.png")
        # Nothing is too small, in a margin or isolated any more
        assert (cleaned[130:135, 340:345] == 0).all()
        assert (cleaned[100:104, 10:14] == 0).all()
        assert (cleaned[100:102, 300:302] == 0).all()

    def test_preview(self, temp_dir, test_image_files):
        out_dir = temp_dir / "out"
        assert main([str(test_image_files[0]), "-o", str(out_dir), "--quiet", "--preview"]) == 0

        cleaned = load_image(out_dir / "page_001.png")
        assert tuple(cleaned[100, 300]) == MAGENTA
        assert tuple(cleaned[132, 342]) == MAGENTA
        assert tuple(cleaned[0, 0]) == (255, 255, 255)

    def test_config_file(self, temp_dir, test_image_files):
        config_path = temp_dir / "config.yaml"
        config_path.write_text(
            "batch:\n"
            f"  output_dir: {temp_dir / 'from_config'}\n"
            "logging:\n"
            "  level: WARNING\n"
            "  use_rich: false\n"
        )

        assert main([str(test_image_files[0]), "-c", str(config_path)]) == 0
        assert (temp_dir / "from_config" / "page_001.png").exists()

    def test_invalid_config_exits_with_2(self, temp_dir, test_image_files):
        assert main([str(test_image_files[0]), "--off-white", "300"]) == 2

        config_path = temp_dir / "bad.json"
        config_path.write_text('{"cleanup": {"unknown": 1}}')
        assert main([str(test_image_files[0]), "-c", str(config_path)]) == 2

    def test_failed_page_exits_with_1(self, temp_dir):
        corrupt = temp_dir / "corrupt.png"
        corrupt.write_bytes(b"not an image")
        out_dir = temp_dir / "out"

        assert main([str(corrupt), "-o", str(out_dir), "--quiet"]) == 1
        assert not (out_dir / "corrupt.png").exists()

    def test_missing_input_exits_with_1(self, temp_dir):
        assert main([str(temp_dir / "nope.png"), "--quiet"]) == 1
