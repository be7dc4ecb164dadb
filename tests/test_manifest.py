"""
Tests for manifest parsing.
"""

import pytest

from ravel.config import CloudConfig
from ravel.manifest import ManifestError, load_manifest, parse_manifest
from ravel.model import DNSRecord, Gateway, Instance, LoadBalancer, PrivateNetwork, Volume

MANIFEST = """\
cluster: demo.example.com
resources:
  - kind: private-network
    ip_range: 10.0.0.0/16
  - kind: gateway
  - kind: load-balancer
    tags:
      team: infra
  - kind: volume
    name: etcd
    size_gb: 20
  - kind: instance
    name: nodes
    commercial_type: t3.medium
    image: ami-1
    count: 3
  - kind: dns-record
    name: API.demo.example.com.
    values: [5.6.7.8, 1.2.3.4]
"""


class TestParseManifest:
    """Test turning manifest documents into desired states."""

    def test_full_manifest(self, tmp_path):
        path = tmp_path / "cluster.yaml"
        path.write_text(MANIFEST)

        cluster, desired = load_manifest(path, CloudConfig(region="eu-west-3"))

        assert cluster == "demo.example.com"
        network, gateway, lb, volume, nodes, record = desired

        assert network == PrivateNetwork(name="vpc-demo.example.com", zone="eu-west-3a", ip_range="10.0.0.0/16",
                                         tags={"KubernetesCluster": "demo.example.com"})
        assert gateway == Gateway(name="gw-demo.example.com", network="vpc-demo.example.com",
                                  tags={"KubernetesCluster": "demo.example.com"})
        assert isinstance(lb, LoadBalancer)
        assert lb.name == "api-demo-example-com"
        assert lb.network == "vpc-demo.example.com"
        assert lb.tags == {"KubernetesCluster": "demo.example.com", "team": "infra"}
        assert isinstance(volume, Volume)
        assert volume.size_gb == 20
        assert isinstance(nodes, Instance)
        assert nodes.count == 3
        assert nodes.network == "vpc-demo.example.com"
        assert nodes.tags["instance-group"] == "nodes"
        assert record == DNSRecord(name="api.demo.example.com", values=("1.2.3.4", "5.6.7.8"))

    def test_configured_zone_is_the_default(self):
        _, desired = parse_manifest(
            {"cluster": "c1", "resources": [{"kind": "volume", "name": "data", "size_gb": 1}]},
            CloudConfig(region="eu-west-1", zone="eu-west-1b"),
        )

        assert desired[0].zone == "eu-west-1b"

    def test_no_default_network_with_two_networks(self):
        _, desired = parse_manifest({"cluster": "c1", "resources": [
            {"kind": "private-network", "name": "a"},
            {"kind": "private-network", "name": "b"},
            {"kind": "gateway"},
        ]})

        assert desired[2].network is None

    def test_dns_record_defaults_to_cluster_name(self):
        _, desired = parse_manifest({"cluster": "Demo.Example.com", "resources": [
            {"kind": "dns-record", "values": ["1.2.3.4"]},
        ]})

        assert desired[0].name == "demo.example.com"

    def test_empty_resources(self):
        assert parse_manifest({"cluster": "c1"}) == ("c1", [])


class TestManifestErrors:
    """Test invalid manifests."""

    @pytest.mark.parametrize("data", [
        {},
        {"cluster": ""},
        {"cluster": "c1", "resources": [{"kind": "bucket"}]},
        {"cluster": "c1", "resources": [{"kind": "volume", "name": "x", "size": 10}]},
        {"cluster": "c1", "resources": [{"kind": "instance", "name": "x", "count": -1}]},
        {"cluster": "c1", "extra": True},
    ])
    def test_invalid(self, data):
        with pytest.raises(ManifestError):
            parse_manifest(data)

    def test_unnamed_instance(self):
        with pytest.raises(ManifestError, match="need a name"):
            parse_manifest({"cluster": "c1", "resources": [{"kind": "instance"}]})

    def test_duplicate(self):
        with pytest.raises(ManifestError, match="more than once"):
            parse_manifest({"cluster": "c1", "resources": [
                {"kind": "volume", "name": "data"},
                {"kind": "volume", "name": "data"},
            ]})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError, match="Cannot read"):
            load_manifest(tmp_path / "missing.yaml")

    def test_bad_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("cluster: [unclosed")

        with pytest.raises(ManifestError, match="Invalid YAML"):
            load_manifest(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ManifestError, match="mapping"):
            load_manifest(path)
