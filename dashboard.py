import asyncio
import logging
import threading
from typing import Optional, Tuple

# Third-party UI libs
import dash
from dash import dcc, html
from dash.dependencies import Input, Output
import plotly.graph_objs as go
import pandas as pd

from tello_config import TelloOptions
from tello_errors import TelloError
from telemetry import TelemetryListener, TelemetryStore

logger = logging.getLogger(__name__)

# Common layout style for dark mode
LAYOUT_CFG = dict(
    plot_bgcolor='#111',
    paper_bgcolor='#111',
    font=dict(color='#fff'),
    margin=dict(l=40, r=20, t=30, b=30),
    xaxis=dict(showgrid=True, gridcolor='#333', title='Seconds'),
    yaxis=dict(showgrid=True, gridcolor='#333'),
)

# ==============================================================================
# 1. BACKGROUND LISTENER
# ==============================================================================

def run_state_listener(store: TelemetryStore, local: Tuple[str, int],
                       stop: threading.Event) -> None:
    """
    Runs in a separate thread with its own event loop, feeding `store`
    until `stop` is set.
    """
    async def listen():
        listener = TelemetryListener(store.add_reading, local)
        await listener.start()
        try:
            while not stop.is_set():
                await asyncio.sleep(0.2)
        finally:
            listener.stop()

    try:
        asyncio.run(listen())
    except TelloError as e:
        logger.error(f"State listener crashed: {e}")

# ==============================================================================
# 2. FIGURES
# ==============================================================================

def build_figures(df: pd.DataFrame) -> Tuple[go.Figure, go.Figure, str]:
    fig_height = go.Figure()
    fig_height.add_trace(go.Scatter(
        x=df['time'], y=df['height'],
        mode='lines+markers', name='Height (cm)',
        line=dict(color='#00ccff', width=2)
    ))
    fig_height.add_trace(go.Scatter(
        x=df['time'], y=df['tof_distance'],
        mode='lines', name='ToF (mm)',
        line=dict(color='#ff00ff', width=1, dash='dot')
    ))
    fig_height.update_layout(title="Height", **LAYOUT_CFG)

    fig_attitude = go.Figure()
    for column, color in (('pitch', '#00ff00'), ('roll', '#ff9900'), ('yaw', '#ffff00')):
        fig_attitude.add_trace(go.Scatter(
            x=df['time'], y=df[column],
            mode='lines', name=column.capitalize(),
            line=dict(color=color, width=2)
        ))
    fig_attitude.update_layout(title="Attitude (deg)", **LAYOUT_CFG)

    latest = df.iloc[-1]
    status_txt = (
        f"LATEST | BAT: {int(latest['battery'])}% | H: {int(latest['height'])}cm | "
        f"TEMP: {int(latest['temperature_low'])}-{int(latest['temperature_high'])}C | "
        f"BARO: {latest['barometer']:.2f}m"
    )
    return fig_height, fig_attitude, status_txt

# ==============================================================================
# 3. DASHBOARD UI
# ==============================================================================

def create_app(store: TelemetryStore, refresh_ms: int = 1000) -> dash.Dash:
    app = dash.Dash(__name__, title="Tello Telemetry")

    app.layout = html.Div(style={'backgroundColor': '#111', 'color': '#fff', 'minHeight': '100vh', 'padding': '20px'}, children=[
        html.H2("Tello State Monitor", style={'textAlign': 'center', 'fontFamily': 'monospace'}),

        # Status Bar
        html.Div(id='live-text', style={'textAlign': 'center', 'marginBottom': '20px', 'fontFamily': 'monospace', 'color': '#0f0'}),

        html.Div([
            dcc.Graph(id='graph-height', style={'height': '300px'}),
            dcc.Graph(id='graph-attitude', style={'height': '300px'}),
        ]),

        dcc.Interval(id='interval-component', interval=refresh_ms, n_intervals=0),
    ])

    @app.callback(
        [Output('graph-height', 'figure'),
         Output('graph-attitude', 'figure'),
         Output('live-text', 'children')],
        [Input('interval-component', 'n_intervals')]
    )
    def update_metrics(n):
        df = store.get_dataframe()
        if df.empty:
            return dash.no_update, dash.no_update, "Waiting for data..."
        return build_figures(df)

    return app


def serve(store: Optional[TelemetryStore] = None, options: Optional[TelloOptions] = None,
          listen: bool = True, port: int = 8050) -> None:
    """
    Blocks serving the dashboard on http://127.0.0.1:<port>.
    With listen=True a daemon thread binds the state port and fills the store;
    pass listen=False when a connected session already feeds `store`.
    """
    # Disable the noisy Dash logging
    logging.getLogger('werkzeug').setLevel(logging.ERROR)

    if store is None:
        store = TelemetryStore(max_len=60)
    options = options or TelloOptions.from_env()
    stop = threading.Event()

    if listen:
        t = threading.Thread(
            target=run_state_listener,
            args=(store, ("0.0.0.0", options.state_port), stop),
            daemon=True,
        )
        t.start()

    logger.info(f"Dashboard on http://127.0.0.1:{port}")
    try:
        create_app(store).run(debug=False, port=port)
    finally:
        stop.set()
