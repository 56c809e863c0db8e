"""Tests for DNS record planning and applying."""
from homelab.models.errors import DnsApiError, RecordAlreadyExistsNotice
from homelab.services.dns import DnsProvider, DnsRecord, DnsRecordPlanner


class FakeProvider(DnsProvider):
    """In-memory provider recording every call."""

    def __init__(self, existing=(), already=(), failing=()):
        super().__init__(mock=False)
        self.existing = set(existing)
        self.already = set(already)
        self.failing = set(failing)
        self.zones = []
        self.added = []

    def create_zone(self, zone):
        self.zones.append(zone)
        return True

    def record_exists(self, record, zone):
        return record.name in self.existing

    def add_record(self, record, zone):
        if record.name in self.already:
            raise RecordAlreadyExistsNotice(f"{record.describe()}: already exists")
        if record.name in self.failing:
            raise DnsApiError("/api/zones/records/add: server error")
        self.added.append(record)


class TestPlan:

    def test_sample_plan(self, homelab_config):
        records = DnsRecordPlanner(homelab_config).plan()

        assert records == [
            DnsRecord("A", "manager.diyhub.dev", "192.168.1.100"),
            DnsRecord("A", "node-01.diyhub.dev", "192.168.1.101"),
            DnsRecord("CNAME", "photos.diyhub.dev", "manager.diyhub.dev"),
            DnsRecord("CNAME", "budget.diyhub.dev", "manager.diyhub.dev"),
        ]

    def test_routed_services_limit_cnames(self, homelab_config):
        records = DnsRecordPlanner(homelab_config, routed_services=['actual']).plan()
        assert [r.name for r in records if r.type == "CNAME"] == ["budget.diyhub.dev"]

    def test_machine_without_ip_skipped(self, make_config):
        config = make_config(
            {'app': {'image': 'app', 'enabled': True}},
            machines={'nas': {'ip': 'nas.lan', 'role': 'manager'}, '10.0.0.9': {'ip': '10.0.0.9'}},
        )
        planner = DnsRecordPlanner(config)

        assert planner.plan() == []
        assert len(planner.warnings) == 2

    def test_domain_outside_zone_skipped(self, make_config):
        config = make_config({'files': {
            'image': 'files', 'port': 8080, 'domain': 'files.example.org', 'enabled': True,
        }})
        planner = DnsRecordPlanner(config)

        assert [r.type for r in planner.plan()] == ["A", "A"]
        assert "outside zone" in planner.warnings[0]


class TestApply:

    def test_creates_missing_records(self, homelab_config):
        provider = FakeProvider(existing={"manager.diyhub.dev"})
        report = DnsRecordPlanner(homelab_config).apply(provider)

        assert provider.zones == ["diyhub.dev"]
        assert [r.name for r in report.existing] == ["manager.diyhub.dev"]
        assert [r.name for r in report.created] == [
            "node-01.diyhub.dev", "photos.diyhub.dev", "budget.diyhub.dev",
        ]
        assert report.ok

    def test_already_exists_counts_as_existing(self, homelab_config):
        provider = FakeProvider(already={"photos.diyhub.dev"})
        report = DnsRecordPlanner(homelab_config).apply(provider)

        assert [r.name for r in report.existing] == ["photos.diyhub.dev"]
        assert report.ok

    def test_failure_does_not_stop_other_records(self, homelab_config):
        provider = FakeProvider(failing={"node-01.diyhub.dev"})
        report = DnsRecordPlanner(homelab_config).apply(provider)

        assert not report.ok
        assert report.failed[0][0].name == "node-01.diyhub.dev"
        assert len(report.created) == 3

    def test_dry_run_touches_nothing(self, homelab_config):
        provider = FakeProvider()
        report = DnsRecordPlanner(homelab_config).apply(provider, dry_run=True)

        assert provider.zones == []
        assert provider.added == []
        assert len(report.planned) == 4
        assert report.dry_run
