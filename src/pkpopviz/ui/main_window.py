# src/pkpopviz/ui/main_window.py
import logging

from PySide6.QtWidgets import QMainWindow, QWidget, QHBoxLayout, QStatusBar
from .controls import ControlsPanel, SimulateRequest
from .plots import PlotWidget
from pkpop.generator import generate_population
from pkpop.metrics import exposure_summary

logger = logging.getLogger("pkpopviz")


class MainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("PK Population Viewer")
        self.resize(1100, 680)

        central = QWidget(self); self.setCentralWidget(central)
        root = QHBoxLayout(central)

        self.controls = ControlsPanel()
        self.plot = PlotWidget()
        root.addWidget(self.controls, 0)
        root.addWidget(self.plot, 1)

        self.status = QStatusBar(); self.setStatusBar(self.status)
        self.population = None

        # wire events
        self.controls.simulateRequested.connect(self.on_simulate)

        # first run using current control values
        self.controls._emit_request()

    def on_simulate(self, req: SimulateRequest):
        try:
            self.population = generate_population(req.design, seed=req.seed)
        except Exception as e:
            logger.exception("Simulation failed")
            self.status.showMessage(f"Error: {e}", 8000)
            return

        dataset = self.population.dataset
        self.plot.plot_subjects(dataset)
        exposure = exposure_summary(dataset)
        msg = (f"{req.design.n_subjects} subjects, {len(dataset)} rows | "
               f"median Cmax {exposure['cmax'].median():.1f} mg/L")
        self.status.showMessage(msg, 10000)
