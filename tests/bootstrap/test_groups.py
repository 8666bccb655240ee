from mlbootstrap.bootstrap.groups import GroupConfigurator
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.events import GroupCreated, GroupUpdated

from conftest import BOOTSTRAP, SUFFIX, make_config

MANAGE = f"http://{BOOTSTRAP}:8002/manage/v2"
DNODE0 = f"dnode-0.{SUFFIX}"


class Collect:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


def _groups(cfg, client, sink=None):
    return GroupConfigurator(
        client,
        node=cfg.node,
        topology=cfg.topology,
        bus=EventBus([sink] if sink else []),
    )


def test_missing_group_is_created_exactly_once(session, sleep, client_for):
    cfg = make_config(0, cluster_type="non-bootstrap", group_name="dnode", xdqp_ssl_enabled=True)
    session.script("GET", f"{MANAGE}/hosts/{DNODE0}/properties?format=json", 404)
    session.script("GET", f"{MANAGE}/groups/dnode?format=json", 404)
    session.script("POST", f"{MANAGE}/groups", 201)
    sink = Collect()

    assert _groups(cfg, client_for(cfg), sink).run() is True

    (post,) = session.mutating
    assert post[:2] == ("POST", f"{MANAGE}/groups")
    assert post[2]["json"] == {"group-name": "dnode", "xdqp-ssl-enabled": True}
    assert [type(e) for e in sink.events] == [GroupCreated]


def test_existing_group_is_not_created(session, sleep, client_for):
    cfg = make_config(0, cluster_type="non-bootstrap", group_name="dnode")
    session.script("GET", f"{MANAGE}/hosts/{DNODE0}/properties?format=json", 404)
    session.script("GET", f"{MANAGE}/groups/dnode?format=json", 200)

    _groups(cfg, client_for(cfg)).run()

    assert session.mutating == []


def test_current_group_properties_are_updated(session, sleep, client_for):
    cfg = make_config(0, xdqp_ssl_enabled=True)
    session.script("GET", f"{MANAGE}/hosts/{BOOTSTRAP}/properties?format=json", (200, '{"group": "Default"}'))
    session.script("PUT", f"{MANAGE}/groups/Default/properties?format=json", 202)
    sink = Collect()

    _groups(cfg, client_for(cfg), sink).run()

    (put,) = session.mutating
    assert put[2]["json"] == {"group-name": "Default", "xdqp-ssl-enabled": True}
    # the bootstrap group never goes through creation
    assert session.called("GET", f"{MANAGE}/groups/Default?format=json") == []
    (event,) = sink.events
    assert isinstance(event, GroupUpdated)
    assert (event.previous, event.status) == ("Default", 202)


def test_failed_update_and_create_are_not_fatal(session, sleep, client_for):
    cfg = make_config(0, cluster_type="non-bootstrap", group_name="dnode")
    session.script("GET", f"{MANAGE}/hosts/{DNODE0}/properties?format=json", (200, '{"group": "Default"}'))
    session.script("PUT", f"{MANAGE}/groups/Default/properties?format=json", 400)
    session.script("GET", f"{MANAGE}/groups/dnode?format=json", 404)
    session.script("POST", f"{MANAGE}/groups", 500)

    assert _groups(cfg, client_for(cfg)).run() is True
    assert len(session.mutating) == 2


def test_other_ordinals_skip(session, sleep, client_for):
    cfg = make_config(2, cluster_type="non-bootstrap", group_name="dnode")

    assert _groups(cfg, client_for(cfg)).run() is False
    assert session.calls == []


def test_matching_group_properties_are_not_rewritten(session, sleep, client_for):
    cfg = make_config(0)
    session.script("GET", f"{MANAGE}/hosts/{BOOTSTRAP}/properties?format=json", (200, '{"group": "Default"}'))
    session.script(
        "GET",
        f"{MANAGE}/groups/Default/properties?format=json",
        (200, '{"group-name": "Default", "xdqp-ssl-enabled": false}'),
    )

    _groups(cfg, client_for(cfg)).run()

    assert session.mutating == []
