"""
Tests for the command-line entry point.

Author: FlowerScope Team
"""

import json

import pytest
import yaml

from flowerscope import cli
from flowerscope.inference.pipeline import STATUS_ASSET_LOAD_FAILED, STATUS_MODEL_NOT_LOADED

from tests.conftest import FakeGenericDetector, FakeModelRunner, make_output


@pytest.fixture
def config_path(temp_directory):
    path = temp_directory / 'config.yaml'
    path.write_text(yaml.safe_dump({
        'model': {'model_path': str(temp_directory / 'missing.tflite')}
    }), encoding='utf-8')
    return path


@pytest.fixture
def fake_analyzer_factory(monkeypatch, make_analyzer, generic_boxes):
    """Route FlowerAnalyzer.from_config in the CLI to fake engines."""
    created = []

    class _FakeAnalyzerFactory:
        @staticmethod
        def from_config(config, load_generic=None):
            runner = FakeModelRunner(make_output([[0.1, 0.1, 0.5, 0.5, 0.9, 3]]))
            analyzer = make_analyzer(runner=runner,
                                     generic_detector=FakeGenericDetector(generic_boxes),
                                     score_threshold=config.get('detection.score_threshold'))
            created.append(analyzer)
            return analyzer

    monkeypatch.setattr(cli, 'FlowerAnalyzer', _FakeAnalyzerFactory)
    return created


class TestCollectImages:

    @pytest.mark.unit
    def test_directories_filtered_and_sorted(self, temp_directory, make_image_file):
        make_image_file('b.jpg', 10, 10)
        make_image_file('a.PNG', 10, 10)
        (temp_directory / 'notes.txt').write_text('x', encoding='utf-8')

        images = cli.collect_images([str(temp_directory)], ['.jpg', '.png'])

        assert [p.name for p in images] == ['a.PNG', 'b.jpg']

    @pytest.mark.unit
    def test_explicit_files_kept(self, temp_directory):
        images = cli.collect_images([str(temp_directory / 'photo.heic')], ['.jpg'])

        assert [p.name for p in images] == ['photo.heic']


class TestMain:

    @pytest.mark.unit
    def test_analyse_with_outputs(self, fake_analyzer_factory, config_path, sample_images,
                                  temp_directory, capsys):
        output_dir = temp_directory / 'annotated'
        report_path = temp_directory / 'report.json'

        exit_code = cli.main([
            str(sample_images['small']),
            '--config', str(config_path),
            '--output-dir', str(output_dir),
            '--report', str(report_path)
        ])

        out = capsys.readouterr().out
        assert exit_code == 0
        assert 'sunflower (0.90)' in out
        assert (output_dir / 'small_annotated.png').exists()
        report = json.loads(report_path.read_text(encoding='utf-8'))
        assert report['analysed'] == 1

    @pytest.mark.unit
    def test_threshold_override(self, fake_analyzer_factory, config_path, sample_images, capsys):
        exit_code = cli.main([str(sample_images['small']), '--config', str(config_path),
                              '--threshold', '0.95'])

        assert exit_code == 0
        assert fake_analyzer_factory[0].decoder.score_threshold == 0.95
        assert 'No flowers detected' in capsys.readouterr().out

    @pytest.mark.unit
    def test_failed_image_sets_exit_code(self, fake_analyzer_factory, config_path, sample_images, capsys):
        exit_code = cli.main([str(sample_images['small']), str(sample_images['corrupt']),
                              '--config', str(config_path)])

        out = capsys.readouterr().out
        assert exit_code == 1
        assert 'Error loading image' in out

    @pytest.mark.unit
    def test_invalid_threshold_rejected(self, config_path, sample_images):
        assert cli.main([str(sample_images['small']), '--config', str(config_path),
                         '--threshold', '2.0']) == 1

    @pytest.mark.unit
    def test_no_images(self, config_path, temp_directory):
        empty_dir = temp_directory / 'empty_dir'
        empty_dir.mkdir()

        assert cli.main([str(empty_dir), '--config', str(config_path)]) == 1

    @pytest.mark.integration
    def test_missing_model_still_renders(self, config_path, sample_images, temp_directory, capsys):
        output_dir = temp_directory / 'annotated'

        exit_code = cli.main([str(sample_images['small']), '--config', str(config_path),
                              '--no-generic', '--output-dir', str(output_dir)])

        captured = capsys.readouterr()
        assert exit_code == 0
        assert STATUS_ASSET_LOAD_FAILED in captured.err
        assert STATUS_MODEL_NOT_LOADED in captured.out
        assert (output_dir / 'small_annotated.png').exists()

    @pytest.mark.unit
    def test_save_error_counted_and_batch_continues(self, fake_analyzer_factory, config_path,
                                                   sample_images, temp_directory, capsys):
        blocked_dir = temp_directory / 'not_a_directory'
        blocked_dir.write_text('x', encoding='utf-8')
        report_path = temp_directory / 'report.json'

        exit_code = cli.main([
            str(sample_images['small']), str(sample_images['large_jpeg']),
            '--config', str(config_path),
            '--output-dir', str(blocked_dir),
            '--report', str(report_path)
        ])

        captured = capsys.readouterr()
        assert exit_code == 1
        assert captured.out.count('== ') == 2
        assert captured.err.count('Error saving annotated image') == 2
        report = json.loads(report_path.read_text(encoding='utf-8'))
        assert report['total_images'] == 2
