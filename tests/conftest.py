# -*- coding: utf-8 -*-
"""测试公共数据"""

import json

import pytest


SAMPLE_XML = b"""/usr/local/rvm/rubies/ruby-3.2.2/bin/ruby
<?xml version="1.0" encoding="iso8859-1" ?>
<info version="3">
  <passenger_version>6.0.18</passenger_version>
  <process_count>3</process_count>
  <max>6</max>
  <capacity_used>3</capacity_used>
  <get_wait_list_size>1</get_wait_list_size>
  <supergroups>
    <supergroup>
      <name>/app (production)</name>
      <state>READY</state>
      <get_wait_list_size>1</get_wait_list_size>
      <capacity_used>2</capacity_used>
      <group default="true">
        <name>/app (production)</name>
        <processes>
          <process>
            <pid>1001</pid>
            <sessions>1</sessions>
            <busyness>1</busyness>
            <concurrency>1</concurrency>
            <processed>120</processed>
            <spawn_start_time>1700000000123456</spawn_start_time>
            <last_used>1700000500000000</last_used>
            <uptime>1h 2m 3s</uptime>
            <life_status>ALIVE</life_status>
            <enabled>ENABLED</enabled>
            <has_metrics>true</has_metrics>
            <cpu>12</cpu>
            <rss>204800</rss>
            <real_memory>150000</real_memory>
            <vmsize>900000</vmsize>
            <requests>1</requests>
          </process>
          <process>
            <pid>1002</pid>
            <sessions>0</sessions>
            <busyness>0</busyness>
            <processed>80</processed>
            <life_status>ALIVE</life_status>
            <enabled>ENABLED</enabled>
            <cpu>0.5</cpu>
            <rss>102400</rss>
          </process>
        </processes>
      </group>
    </supergroup>
    <supergroup>
      <name>Prometheus exporter</name>
      <get_wait_list_size>0</get_wait_list_size>
      <capacity_used>1</capacity_used>
      <group>
        <name>Prometheus exporter</name>
        <processes>
          <process>
            <pid>2001</pid>
            <busyness>1</busyness>
            <life_status>ALIVE</life_status>
          </process>
        </processes>
      </group>
    </supergroup>
  </supergroups>
</info>
"""


SAMPLE_STATUS = {
    "name": "web-1",
    "supergroups": [
        {
            "name": "/app (production)",
            "capacity_used": 2,
            "get_wait_list_size": 1,
            "group": {
                "processes": [
                    {"pid": "1001", "cpu": 12, "rss": 204800, "sessions": 1,
                     "processed": 120, "busyness": 1, "life_status": "ALIVE",
                     "enabled": "ENABLED"},
                    {"pid": "1002", "cpu": 0.5, "rss": 102400, "sessions": 0,
                     "processed": 80, "busyness": 0, "life_status": "ALIVE",
                     "enabled": "ENABLED"},
                ]
            }
        },
        {
            "name": "/api (production)",
            "capacity_used": 1,
            "get_wait_list_size": 3,
            "group": {
                "processes": [
                    {"pid": "3001", "cpu": 1.5, "rss": 50000, "processed": 7},
                ]
            }
        },
        {
            "name": "Prometheus exporter",
            "capacity_used": 1,
            "get_wait_list_size": 0,
            "group": {"processes": [{"pid": "2001"}]}
        },
    ]
}


@pytest.fixture
def sample_xml():
    return SAMPLE_XML


@pytest.fixture
def sample_status():
    return json.loads(json.dumps(SAMPLE_STATUS))


@pytest.fixture
def sample_json(sample_status):
    return json.dumps(sample_status).encode('utf-8')
