"""
Tests for seqhmm.cli.common argument factories.
"""
import pytest
import argparse

from seqhmm.cli.common import (
    add_input_args,
    add_iteration_args,
    add_kmer_args,
    add_method_args,
    add_model_args,
    add_output_args,
    add_reestimate_args,
    add_stats_args,
    add_verbose_args,
)


class TestAddModelArgs:
    def test_default_preset(self):
        parser = argparse.ArgumentParser()
        add_model_args(parser)
        args = parser.parse_args([])
        assert args.preset == 'gc-content'
        assert args.model is None

    def test_custom_default(self):
        parser = argparse.ArgumentParser()
        add_model_args(parser, default_preset='toy')
        assert parser.parse_args([]).preset == 'toy'

    def test_invalid_preset(self):
        parser = argparse.ArgumentParser()
        add_model_args(parser)
        with pytest.raises(SystemExit):
            parser.parse_args(['--preset', 'invalid'])

    def test_preset_and_model_exclusive(self):
        parser = argparse.ArgumentParser()
        add_model_args(parser)
        with pytest.raises(SystemExit):
            parser.parse_args(['--preset', 'toy', '--model', 'm.json'])


class TestAddMethodArgs:
    def test_default(self):
        parser = argparse.ArgumentParser()
        add_method_args(parser)
        assert parser.parse_args([]).method == 'viterbi'

    def test_valid_choices(self):
        parser = argparse.ArgumentParser()
        add_method_args(parser)
        for method in ['viterbi', 'baum-welch']:
            assert parser.parse_args(['--method', method]).method == method

    def test_invalid_choice(self):
        parser = argparse.ArgumentParser()
        add_method_args(parser)
        with pytest.raises(SystemExit):
            parser.parse_args(['--method', 'em'])


class TestAddIterationArgs:
    def test_defaults(self):
        parser = argparse.ArgumentParser()
        add_iteration_args(parser)
        args = parser.parse_args([])
        assert args.iterations == 10
        assert args.threshold == 0.1
        assert args.max_iterations == 1000

    def test_override_from_cli(self):
        parser = argparse.ArgumentParser()
        add_iteration_args(parser)
        args = parser.parse_args(['-n', '3', '--threshold', '0.01', '--max-iterations', '50'])
        assert args.iterations == 3
        assert args.threshold == 0.01
        assert args.max_iterations == 50


class TestAddKmerArgs:
    def test_defaults(self):
        parser = argparse.ArgumentParser()
        add_kmer_args(parser)
        args = parser.parse_args([])
        assert args.kmer_size == 1
        assert args.overlapping is False

    def test_short_flag(self):
        parser = argparse.ArgumentParser()
        add_kmer_args(parser)
        args = parser.parse_args(['-k', '3', '--overlapping'])
        assert args.kmer_size == 3
        assert args.overlapping is True


class TestSimpleFlags:
    def test_input_required(self):
        parser = argparse.ArgumentParser()
        add_input_args(parser)
        with pytest.raises(SystemExit):
            parser.parse_args([])

    def test_output_required(self):
        parser = argparse.ArgumentParser()
        add_output_args(parser)
        with pytest.raises(SystemExit):
            parser.parse_args([])

    def test_output_optional(self):
        parser = argparse.ArgumentParser()
        add_output_args(parser, required=False)
        assert parser.parse_args([]).output is None

    def test_reestimate(self):
        parser = argparse.ArgumentParser()
        add_reestimate_args(parser)
        assert parser.parse_args([]).reestimate is None
        assert parser.parse_args(['--reestimate', 'transition,emission']).reestimate == \
            'transition,emission'

    def test_stats_and_verbose(self):
        parser = argparse.ArgumentParser()
        add_stats_args(parser)
        add_verbose_args(parser)
        args = parser.parse_args(['--stats', '-v'])
        assert args.stats is True
        assert args.verbose is True
