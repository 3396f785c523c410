"""Streamlit dashboard that drives and watches a running evloop server.

The app polls the server's `/state` endpoint and renders the queue lanes,
the console output and the highlighted source line. Transport buttons and
the source editor POST to the same server. Start the server first
(`python -m evloop.runtime.run_server`), then
`streamlit run evloop/dashboard/app.py`.
"""

import time

import requests
import streamlit as st

from evloop.compiler.scanner import split_lines
from evloop.config import ServerConfig
from evloop.demo import DEFAULT_DEMO_CODE

TIMEOUT = 0.5


def post(api: str, path: str, body):
    """POST `body` to the server; errors are shown instead of raised."""
    try:
        r = requests.post(api + path, json=body, timeout=TIMEOUT)
        r.raise_for_status()
    except requests.RequestException as e:
        st.error(f"{path}: {e}")


def render_source(source: str, highlighted):
    rows = []
    for n, line in enumerate(split_lines(source), start=1):
        marker = ">>" if n == highlighted else "  "
        rows.append(f"{marker} {n:3d}  {line}")
    st.code("\n".join(rows) or " ", language=None)


def render_state(state, lanes, source: str):
    total = state["totalSteps"]
    index = state["currentStepIndex"]
    st.progress((index + 1) / total if total else 0.0, text=f"{index + 1}/{total} ({state['playbackState']})")
    queues = state["queues"]
    if queues["currentAnnotation"]:
        st.info(queues["currentAnnotation"])

    left, middle, right = st.columns([1, 1.2, 1])
    with left:
        st.subheader("Source")
        render_source(source, queues["highlightedLine"])
    with middle:
        for lane in lanes:
            entries = queues[lane["queueType"]]
            st.markdown(f"**{lane['label']}** ({len(entries)})")
            st.caption(lane["description"])
            for entry in entries:
                st.text(f"  {entry['label']}  [{entry['phase']}]")
    with right:
        st.subheader("Console")
        st.code("\n".join(queues["output"]) or " ", language=None)


cfg = ServerConfig.from_env()
api = cfg.api_url
playback = cfg.playback

st.set_page_config(page_title="Event Loop Visualizer", layout="wide")
source = st.text_area("Source", DEFAULT_DEMO_CODE, height=240)
if st.button("Load source"):
    post(api, "/source", {"source": source})

cols = st.columns(5)
for col, action in zip(cols[:4], ["play", "pause", "step", "reset"]):
    if col.button(action.capitalize()):
        post(api, "/control", {"action": action})
speed = cols[4].slider("Speed", playback.min_speed, playback.max_speed, playback.speed)
post(api, "/speed", {"speed": speed})
interval = st.sidebar.slider("Refresh interval (sec)", 0.2, 2.0, 0.5)

try:
    lanes = requests.get(api + "/queues", timeout=TIMEOUT).json()
except requests.RequestException as e:
    st.error(str(e))
    st.stop()

placeholder = st.empty()
while True:
    with placeholder.container():
        try:
            r = requests.get(api + "/state", timeout=TIMEOUT)
            render_state(r.json(), lanes, source)
        except requests.RequestException as e:
            st.error(str(e))
    time.sleep(interval)
