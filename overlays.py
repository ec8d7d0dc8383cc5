import numpy as np
import mplcursors
import matplotlib.cm as cm

from annotations import AnnotationSet
from dashboard_logging import get_logger

logger = get_logger(__name__)


class FoodEntryOverlay:
    """
    Overlay markers that annotate the selected patient's trace with meal-log
    buckets, colored by carbohydrate load and sized by it, with hover tooltips.

    Parameters
    ----------
    default_color : str, default 'orange'
        Marker color when no carb color scale applies (a single bucket, or
        identical carb totals).
    show_legend : bool, default True
        If True, draw a colorbar for the carb color scale when one exists.
    max_carbs : float, default 100
        Carb amount (g) mapped to the largest marker size.

    Notes
    -----
    Acts as the dashboard's annotation sink. Requires the viewer to expose
    ``viewer.ax_cgm``, ``viewer.fig`` and ``viewer.dashboard``; the y-position of
    each marker is the selected patient's reading nearest in time to the bucket.
    """
    def __init__(self, default_color="orange", show_legend=True, max_carbs=100.0):
        self.default_color = default_color
        self.show_legend = show_legend
        self.max_carbs = max_carbs
        self.annotations = None
        self.points = []
        self._colorbar = None
        self._cursor = None

    def _size_from_carbs(self, carbs: float) -> float:
        carbs = float(np.clip(carbs, 0.0, self.max_carbs))
        return np.interp(carbs, [0.0, self.max_carbs], [40, 280])

    @staticmethod
    def _tooltip(bucket) -> str:
        names = [e.food_name for e in bucket.entries if e.food_name]
        t = bucket.nutrient_totals
        lines = [bucket.time_label] + names[:5]
        if len(names) > 5:
            lines.append(f"+{len(names) - 5} more")
        lines.append(f"$\\bf{{Carbs:}}$ {t['total_carb']:.0f} g   $\\bf{{Sugar:}}$ {t['sugar']:.0f} g")
        lines.append(f"$\\bf{{Calories:}}$ {t['calorie']:.0f}   $\\bf{{Protein:}}$ {t['protein']:.0f} g")
        return "\n".join(lines)

    # --- Annotation sink ---
    def show_annotations(self, annotations: AnnotationSet):
        self.annotations = annotations
        self.draw()

    def clear_annotations(self):
        self.annotations = None
        self._remove_artists()
        viewer = getattr(self, "viewer", None)
        if viewer is not None and viewer.fig is not None:
            viewer.fig.canvas.draw_idle()

    def _remove_artists(self):
        for pt in self.points:
            pt.remove()
        self.points = []
        if self._colorbar is not None:
            self._colorbar.remove()
            self._colorbar = None
        if self._cursor is not None:
            self._cursor.remove()
            self._cursor = None

    def draw(self):
        viewer = getattr(self, "viewer", None)
        ax = getattr(viewer, "ax_cgm", None)
        self._remove_artists()
        if ax is None or not self.annotations or not self.annotations.buckets:
            return

        dashboard = viewer.dashboard
        series = dashboard.cohort.get(dashboard.annotation_patient) if dashboard.cohort else None
        if series is None:
            return
        df = series.normalized

        tooltips = {}
        for bucket in self.annotations.buckets:
            idx = (df["time"] - bucket.time_of_day).abs().idxmin()
            gl = df.loc[idx, "gl"]

            pt = ax.scatter(bucket.time_of_day, gl,
                            s=self._size_from_carbs(bucket.carbs),
                            color=self.annotations.color_for(bucket, self.default_color),
                            alpha=0.85, linewidth=1.2, edgecolor="white", zorder=5)
            self.points.append(pt)
            tooltips[pt] = self._tooltip(bucket)

        scale = self.annotations.carb_scale
        if self.show_legend and scale is not None:
            mappable = cm.ScalarMappable(norm=scale.norm(), cmap=scale.colormap())
            self._colorbar = viewer.fig.colorbar(mappable, ax=ax, pad=0.01)
            self._colorbar.set_label("Carbs (g)")

        self._cursor = mplcursors.cursor(self.points, hover=True)

        @self._cursor.connect("add")
        def on_hover(sel):
            sel.annotation.set_text(tooltips.get(sel.artist, ""))
            sel.annotation.get_bbox_patch().set(fc="orange", alpha=0.4)

        logger.debug("drew %d food buckets for %s", len(self.points), series.id)
        viewer.fig.canvas.draw_idle()
