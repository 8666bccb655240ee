import pytest

from mlbootstrap.admin.errors import FatalBootstrapError
from mlbootstrap.bootstrap.instance import InstanceInitializer
from mlbootstrap.bootstrap.join import JoinOrchestrator, JoinState
from mlbootstrap.bootstrap.restart import RestartDetector

from conftest import BOOTSTRAP, SUFFIX, make_config

LOCAL = f"ml-1.{SUFFIX}"
MEMBERSHIP = f"http://{BOOTSTRAP}:8002/manage/v2/hosts/{LOCAL}/properties?format=json"
GROUP = f"http://{BOOTSTRAP}:8002/manage/v2/groups/Default?format=json"
INIT = f"http://{LOCAL}:8001/admin/v1/init"
TS = f"http://{LOCAL}:8001/admin/v1/timestamp"
SERVER_CONFIG = f"http://{LOCAL}:8001/admin/v1/server-config"
REMOTE_CLUSTER_CONFIG = f"http://{BOOTSTRAP}:8001/admin/v1/cluster-config"
LOCAL_CLUSTER_CONFIG = f"http://{LOCAL}:8001/admin/v1/cluster-config"

SERVER_XML = "<host xmlns='http://marklogic.com/xdmp/group'><host-name>ml-1</host-name></host>"
ARCHIVE = b"PK\x03\x04cluster-config"


def _join(cfg, client):
    restart = RestartDetector(client, retries=cfg.timing.n_retry, interval=cfg.timing.retry_interval)
    return JoinOrchestrator(
        client,
        node=cfg.node,
        topology=cfg.topology,
        timing=cfg.timing,
        restart=restart,
        initializer=InstanceInitializer(client, cfg.topology, restart),
    )


def _script_handshake(session):
    session.script("POST", INIT, 204)
    session.script("GET", GROUP, 404, 200)
    session.script("GET", SERVER_CONFIG, (200, SERVER_XML))
    session.script("POST", REMOTE_CLUSTER_CONFIG, (200, ARCHIVE))
    session.script("GET", TS, (200, "T1"), (200, "T1"), (200, "T1"), (200, "T2"))
    session.script("POST", LOCAL_CLUSTER_CONFIG, 202)


def test_already_joined_makes_no_mutating_calls(session, sleep, client_for):
    session.script("GET", MEMBERSHIP, 200)
    cfg = make_config(1)

    assert _join(cfg, client_for(cfg)).run() is JoinState.ALREADY_JOINED
    assert session.mutating == []
    assert len(session.calls) == 1


def test_membership_check_retries_until_definite_answer(session, sleep, client_for):
    session.script("GET", MEMBERSHIP, 0, 503, 404)
    cfg = make_config(1)

    assert _join(cfg, client_for(cfg)).already_joined() is False
    assert sleep.calls == [cfg.timing.join_check_delay] * 2


def test_full_handshake(session, sleep, client_for):
    session.script("GET", MEMBERSHIP, 404)
    _script_handshake(session)
    cfg = make_config(1)

    assert _join(cfg, client_for(cfg)).run() is JoinState.JOINED

    assert [(m, u) for m, u, _ in session.mutating] == [
        ("POST", INIT),
        ("POST", REMOTE_CLUSTER_CONFIG),
        ("POST", LOCAL_CLUSTER_CONFIG),
    ]
    remote = session.called("POST", REMOTE_CLUSTER_CONFIG)[0][2]
    assert remote["data"] == {"group": "Default", "server-config": SERVER_XML}

    local = session.called("POST", LOCAL_CLUSTER_CONFIG)[0][2]
    assert local["data"] == ARCHIVE
    assert local["headers"] == {"Content-type": "application/zip"}

    # one sleep waiting for the group, one waiting for the restart
    assert sleep.calls == [cfg.timing.group_wait_interval, cfg.timing.retry_interval]


def test_group_never_appears_is_fatal(session, sleep, client_for):
    session.script("GET", MEMBERSHIP, 404)
    session.script("POST", INIT, 204)
    session.script("GET", TS, (200, "T1"))
    session.script("GET", GROUP, 404)
    cfg = make_config(1)

    with pytest.raises(FatalBootstrapError, match="groups/Default"):
        _join(cfg, client_for(cfg)).run()

    assert len(session.called("GET", GROUP)) == cfg.timing.group_wait_attempts
    assert session.called("POST", REMOTE_CLUSTER_CONFIG) == []


def test_rejected_server_config_is_fatal(session, sleep, client_for):
    session.script("GET", MEMBERSHIP, 404)
    _script_handshake(session)
    session.routes[("POST", REMOTE_CLUSTER_CONFIG)].clear()
    session.script("POST", REMOTE_CLUSTER_CONFIG, (400, "bad group"))
    cfg = make_config(1)

    with pytest.raises(FatalBootstrapError):
        _join(cfg, client_for(cfg)).run()

    assert session.called("POST", LOCAL_CLUSTER_CONFIG) == []


def test_restart_confirmation_can_be_turned_off(session, sleep, client_for):
    session.script("GET", MEMBERSHIP, 404)
    _script_handshake(session)
    cfg = make_config(1)
    cfg = cfg.model_copy(update={"timing": cfg.timing.model_copy(update={"confirm_join_restart": False})})

    assert _join(cfg, client_for(cfg)).run() is JoinState.JOINED
    # baseline capture only, no polling afterwards
    assert len(session.called("GET", TS)) == 2
