import matplotlib.pyplot as plt
import matplotlib.dates as mdates
import matplotlib as mpl
from ipywidgets import widgets, VBox, HBox, Output
import os

from dashboard import CohortDashboard
from dashboard_logging import get_logger
from selection import Gender, Reset, SetGenderEnabled, ToggleSelect

logger = get_logger(__name__)


## Setup fonts
font_path = "./fonts/Lato-Regular.ttf"
if os.path.exists(font_path):
    mpl.font_manager.fontManager.addfont(font_path)
    mpl.rcParams["font.family"] = "Lato"


class CohortViewer:
    """
    Overlay every patient's representative day on one time-of-day axis.

    The viewer is the dashboard's render sink: it never changes selection state
    itself, it dispatches actions and redraws from the styles it is handed.

    Parameters
    ----------
    dashboard : CohortDashboard
        Controller owning the cohort and selection state.
    gl_range : tuple of float or None, default None
        Fixed y-limits; the cohort's padded value domain when ``None``.
    figsize : tuple, default (15, 5)
        Matplotlib figure size.
    """
    def __init__(self, dashboard: CohortDashboard, gl_range=None, figsize=(15, 5)):
        self.dashboard = dashboard
        self.dashboard.render_sink = self
        self.gl_range = gl_range
        self.figsize = figsize

        # Components
        self.overlays = []

        # Figure state
        self.fig = None
        self.ax_cgm = None
        self.lines = {}
        self._cohort = None
        self._highlight = None
        self._tooltip = None
        self._no_data = None

        # Widgets
        self.out = Output()
        self.male_cb = widgets.Checkbox(value=True, description="Male", indent=False)
        self.female_cb = widgets.Checkbox(value=True, description="Female", indent=False)
        self.reset_btn = widgets.Button(
            description="Reset",
            tooltip="Clear selection and filters",
            style=widgets.ButtonStyle(button_color="#f5f5f5")
        )

        # Bind callbacks
        self.male_cb.observe(lambda change: self._set_gender(Gender.MALE, change), names="value")
        self.female_cb.observe(lambda change: self._set_gender(Gender.FEMALE, change), names="value")
        self.reset_btn.on_click(self._reset)

    # --- Styling ---
    def _style_axis(self, ax):
        ax.spines["top"].set_visible(False)
        ax.spines["right"].set_visible(False)
        for axis in ["left", "bottom"]:
            ax.spines[axis].set_linewidth(1.8)
            ax.spines[axis].set_color("#D3D3D3")

        ax.tick_params(axis="both", which="both", length=0)
        ax.tick_params(axis="y", pad=8)
        ax.tick_params(axis="x", pad=8)

        ax.set_ylabel(
            "mg/dL",
            rotation=0,
            labelpad=0,
            ha="right",
            color="0.2"
        )
        ax.yaxis.set_label_coords(0, 1.05)
        ax.xaxis.set_major_locator(mdates.HourLocator(interval=2))
        ax.xaxis.set_major_formatter(mdates.DateFormatter("%H:%M"))

    # --- Public API ---
    def add_overlay(self, overlay):
        overlay.viewer = self
        self.overlays.append(overlay)
        self.dashboard.annotation_sink = overlay

    def build_figure(self):
        self.fig, self.ax_cgm = plt.subplots(figsize=self.figsize)
        self.fig.canvas.header_visible = False
        self._style_axis(self.ax_cgm)
        self.lines = {}

        self.fig.canvas.mpl_connect("motion_notify_event", self._on_motion)
        self.fig.canvas.mpl_connect("axes_leave_event", self._on_leave)
        self.fig.canvas.mpl_connect("button_press_event", self._on_click)
        return self.fig

    def show(self):
        with self.out:
            self.out.clear_output(wait=True)
            if self.fig is None:
                self.build_figure()
            self.dashboard.render()
            plt.show()

        toolbar = HBox([self.male_cb, self.female_cb, self.reset_btn],
                       layout=widgets.Layout(
                           justify_content="center",
                           align_items="center",
                           width="100%",
                           padding="6px 0 8px 0"
                       ))
        return VBox([toolbar, self.out],
                    layout=widgets.Layout(align_items="center", width="100%"))

    # --- Scale mappings (display coordinates) ---
    def x_of(self, t):
        return self.ax_cgm.transData.transform((mdates.date2num(t), 0))[0]

    def y_of(self, gl):
        return self.ax_cgm.transData.transform((0, gl))[1]

    # --- Render sink ---
    def render_series(self, cohort, styles):
        if self.fig is None:
            self.build_figure()
        ax = self.ax_cgm
        if self._no_data is not None:
            self._no_data.remove()
            self._no_data = None
        if cohort is not self._cohort:
            # A reload replaces every trace
            self._clear_lines()
            self._cohort = cohort

        for s, style in zip(cohort, styles):
            line = self.lines.get(s.id)
            if line is None:
                (line,) = ax.plot(s.normalized["time"], s.normalized["gl"],
                                  color=style.color, label=s.id)
                self.lines[s.id] = line
            line.set_visible(style.interactive)
            line.set_alpha(style.alpha)
            line.set_linewidth(style.linewidth)
            line.set_color(style.color)

        ax.set_xlim(*cohort.time_domain)
        ax.set_ylim(*(self.gl_range or cohort.value_domain))
        self.fig.canvas.draw_idle()

    def show_highlight(self, payload):
        ax = self.ax_cgm
        self.clear_highlight()
        x, y = ax.transData.inverted().transform(payload["screen_pos"])
        self._highlight = ax.scatter([x], [y], s=40, color="tomato", edgecolor="white", zorder=10)
        self._tooltip = ax.annotate(
            f"Patient {payload['series_id']} ({payload['gender']})\n"
            f"{payload['time']}  {payload['glucose']:.0f} mg/dL",
            xy=(x, y), xytext=(8, 8), textcoords="offset points",
            fontsize=8, zorder=11,
            bbox=dict(boxstyle="round,pad=0.3", fc="white", ec="#aaa", lw=0.8)
        )
        self.fig.canvas.draw_idle()

    def clear_highlight(self):
        if self._highlight is not None:
            self._highlight.remove()
            self._highlight = None
        if self._tooltip is not None:
            self._tooltip.remove()
            self._tooltip = None
        if self.fig is not None:
            self.fig.canvas.draw_idle()

    def _clear_lines(self):
        for line in self.lines.values():
            line.remove()
        self.lines = {}
        self._cohort = None

    def show_no_data(self):
        if self.fig is None:
            self.build_figure()
        self.clear_highlight()
        self._clear_lines()
        if self._no_data is not None:
            self._no_data.remove()
        self._no_data = self.ax_cgm.text(0.5, 0.5, "no data", ha="center", va="center",
                                         color="#999", transform=self.ax_cgm.transAxes)
        self.fig.canvas.draw_idle()

    # --- Events ---
    def _on_motion(self, event):
        if event.inaxes is not self.ax_cgm or event.xdata is None:
            return
        t = mdates.num2date(event.xdata)
        self.dashboard.pointer_move(t, (event.x, event.y), self.x_of, self.y_of)

    def _on_leave(self, event):
        self.dashboard.pointer_out()

    def _on_click(self, event):
        if event.inaxes is not self.ax_cgm:
            return
        hovered = self.dashboard.state.hovered_id
        if hovered is not None:
            self.dashboard.dispatch(ToggleSelect(hovered))

    def _set_gender(self, gender, change):
        self.dashboard.dispatch(SetGenderEnabled(gender, change["new"]))

    def _reset(self, _):
        self.dashboard.dispatch(Reset())
        self.male_cb.value = True
        self.female_cb.value = True
