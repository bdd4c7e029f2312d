# -*- coding: utf-8 -*-
"""
Tests for single-dimension filtering of the normalized model
"""

from itertools import combinations

import pytest

from collector.filter import FILTER_KEYS, filter_instances, parse_filter_params
from status.errors import MultipleFiltersError
from status.model import Instance, Process, Supergroup, SELF_GROUP_NAME
from status.normalizer import normalize_status


@pytest.fixture
def instances(sample_status):
    return normalize_status(sample_status)


class TestMultipleFilters:
    @pytest.mark.parametrize('keys', [
        combo for size in (2, 3) for combo in combinations(FILTER_KEYS, size)
    ])
    def test_rejects_every_combination(self, instances, keys):
        kwargs = {key: 'x' for key in keys}
        with pytest.raises(MultipleFiltersError) as exc_info:
            filter_instances(instances, **kwargs)

        assert str(exc_info.value) == (
            "Only one filter parameter allowed at a time. Provided: " + ", ".join(keys)
        )

    def test_parse_filter_params_rejects_multiple(self):
        with pytest.raises(MultipleFiltersError):
            parse_filter_params({'instance': 'a', 'pid': '1'})

    def test_blank_values_are_ignored(self):
        assert parse_filter_params({'instance': '', 'supergroup': '  ', 'pid': '12'}) == {'pid': '12'}
        assert parse_filter_params({'supergroup': None}) == {}
        assert parse_filter_params({'supergroup': ' /app '}) == {'supergroup': '/app'}


class TestNoFilter:
    def test_returns_same_instances(self, instances):
        assert filter_instances(instances) == instances


class TestInstanceFilter:
    def test_exact_match(self, instances):
        assert filter_instances(instances, instance='web-1') == instances

    def test_no_match_is_empty(self, instances):
        assert filter_instances(instances, instance='web') == ()


class TestSupergroupFilter:
    def test_keeps_matching_supergroup_and_recomputes(self, instances):
        result = filter_instances(instances, supergroup='/api (production)')

        assert len(result) == 1
        instance = result[0]
        assert [sg.name for sg in instance.supergroups] == ['/api (production)']
        assert instance.process_count == 1
        assert instance.capacity_used == 1
        assert instance.get_wait_list_size == 3

    def test_no_match_drops_instance(self, instances):
        assert filter_instances(instances, supergroup='/missing') == ()

    def test_self_group_never_survives(self):
        instance = Instance(name='i', supergroups=(Supergroup(name=SELF_GROUP_NAME),))
        assert filter_instances((instance,), supergroup=SELF_GROUP_NAME) == ()


class TestPidFilter:
    def test_keeps_matching_process(self, instances):
        result = filter_instances(instances, pid='1002')

        assert len(result) == 1
        instance = result[0]
        assert len(instance.supergroups) == 1
        supergroup = instance.supergroups[0]
        assert [p.pid for p in supergroup.processes] == ['1002']
        assert supergroup.capacity_used == 1
        assert supergroup.get_wait_list_size == 0
        assert instance.process_count == 1
        assert instance.capacity_used == 1
        assert instance.get_wait_list_size == 0

    def test_pid_compared_as_string(self, instances):
        assert filter_instances(instances, pid=1001)[0].supergroups[0].processes[0].pid == '1001'

    def test_duplicate_pids_across_supergroups(self):
        process = Process(pid='7')
        instance = Instance(name='i', supergroups=(
            Supergroup(name='a', capacity_used=5, get_wait_list_size=2, processes=(process, Process(pid='8'))),
            Supergroup(name='b', capacity_used=3, get_wait_list_size=9, processes=(process,)),
            Supergroup(name='c', processes=(Process(pid='9'),)),
        ))

        result = filter_instances((instance,), pid='7')[0]

        assert [sg.name for sg in result.supergroups] == ['a', 'b']
        for sg in result.supergroups:
            assert sg.capacity_used == len(sg.processes) == 1
            assert sg.get_wait_list_size == 0
        assert result.process_count == 2
        assert result.capacity_used == 2
        assert result.get_wait_list_size == 0

    def test_no_match_drops_instance(self, instances):
        assert filter_instances(instances, pid='999999') == ()

    def test_self_group_process_never_survives(self):
        instance = Instance(name='i', supergroups=(
            Supergroup(name=SELF_GROUP_NAME, processes=(Process(pid='1'),)),
        ))
        assert filter_instances((instance,), pid='1') == ()


def test_filtering_does_not_mutate_input(instances):
    before = repr(instances)

    filter_instances(instances, supergroup='/app (production)')
    filter_instances(instances, pid='1001')

    assert repr(instances) == before
    assert instances[0].process_count == 3
