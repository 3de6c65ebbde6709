# src/pkpopviz/ui/plots.py
from PySide6.QtWidgets import QWidget, QVBoxLayout
import pyqtgraph as pg

# Above this many subjects the legend is dropped
MAX_LEGEND_ENTRIES = 12


class PlotWidget(QWidget):
    def __init__(self, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)

        # Main plot area
        self.plot_widget = pg.PlotWidget()
        self.plot_widget.setLabel("left", "Concentration", units="mg/L")
        self.plot_widget.setLabel("bottom", "Time", units="h")
        self.plot_widget.showGrid(x=True, y=True, alpha=0.3)
        self.legend = self.plot_widget.addLegend()
        layout.addWidget(self.plot_widget)

        self.curves = {}  # store references for updates

    def plot_subjects(self, dataset):
        """Spaghetti plot: observed concentrations joined per subject."""
        self.clear()
        obs = dataset[dataset["EVID"] == 0]
        groups = list(obs.groupby("ID", sort=True))
        named = len(groups) <= MAX_LEGEND_ENTRIES
        for i, (sid, grp) in enumerate(groups):
            label = f"ID {int(sid)}"
            curve = self.plot_widget.plot(
                grp["TIME"].to_numpy(), grp["DV"].to_numpy(),
                pen=pg.mkPen(pg.intColor(i, hues=max(len(groups), 1)), width=1),
                symbol="o", symbolSize=4,
                name=label if named else None,
            )
            self.curves[label] = curve

    def clear(self):
        self.plot_widget.clear()
        self.legend.clear()
        self.curves = {}
