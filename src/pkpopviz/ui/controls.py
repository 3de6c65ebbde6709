# src/pkpopviz/ui/controls.py
from dataclasses import dataclass, field
from PySide6.QtCore import Signal
from PySide6.QtWidgets import QVBoxLayout, QPushButton, QDoubleSpinBox, QSpinBox, QComboBox, QFrame, QLabel
from pkpop.design import PopulationDesign, DosingProtocol, ResidualError, default_design
from pkpop.models.compartments import MODELS

@dataclass
class SimulateRequest:
    design: PopulationDesign = field(default_factory=default_design)
    seed: int = 2024

class ControlsPanel(QFrame):
    simulateRequested = Signal(SimulateRequest)

    def __init__(self):
        super().__init__()
        self.setFrameShape(QFrame.StyledPanel)
        layout = QVBoxLayout(self)
        layout.addWidget(QLabel("Controls"))
        base = default_design()

        # --- Population ---
        layout.addWidget(QLabel("Population"))
        self.n_subjects = QSpinBox(); self.n_subjects.setRange(1, 5000); self.n_subjects.setValue(base.n_subjects)
        layout.addWidget(QLabel("Subjects"))
        layout.addWidget(self.n_subjects)

        self.seed = QSpinBox(); self.seed.setRange(0, 2**31 - 1); self.seed.setValue(2024)
        layout.addWidget(QLabel("Seed"))
        layout.addWidget(self.seed)

        self.model = QComboBox(); self.model.addItems(sorted(MODELS))
        self.model.setCurrentText(base.model)
        layout.addWidget(QLabel("Structural model"))
        layout.addWidget(self.model)

        # --- Dosing Parameters ---
        layout.addWidget(QLabel("Dosing"))
        self.dose = QDoubleSpinBox(); self.dose.setRange(1, 1e6); self.dose.setValue(base.dosing.amount_mg)
        self.dose.setSuffix(" mg")
        layout.addWidget(QLabel("Dose (mg)"))
        layout.addWidget(self.dose)

        self.n_doses = QSpinBox(); self.n_doses.setRange(1, 365); self.n_doses.setValue(base.dosing.n_doses)
        layout.addWidget(QLabel("Number of doses"))
        layout.addWidget(self.n_doses)

        self.interval = QDoubleSpinBox(); self.interval.setRange(1, 24 * 28); self.interval.setValue(base.dosing.interval_h)
        self.interval.setSuffix(" h")
        layout.addWidget(QLabel("Interval (h)"))
        layout.addWidget(self.interval)

        # --- Residual error ---
        self.sigma = QDoubleSpinBox(); self.sigma.setDecimals(3); self.sigma.setRange(0.0, 1.0)
        self.sigma.setValue(base.residual.sigma)
        layout.addWidget(QLabel("Proportional error (SD)"))
        layout.addWidget(self.sigma)

        go = QPushButton("Simulate"); layout.addWidget(go)
        go.clicked.connect(self._emit_request)
        layout.addStretch(1)

    def _emit_request(self):
        base = default_design()
        model = self.model.currentText()
        # Keep only the typical values and random effects the chosen model has
        params = MODELS[model].parameters
        typical = {name: base.typical.get(name, 1.0) for name in params}
        if model == "3cmt":
            typical.update({"Q2": 1.0, "Vp2": 200.0})
        design = base.with_changes(
            n_subjects=int(self.n_subjects.value()),
            model=model,
            typical=typical,
            iiv=base.iiv.subset([n for n in base.iiv.names if n in typical]),
            dosing=DosingProtocol(amount_mg=float(self.dose.value()),
                                  n_doses=int(self.n_doses.value()),
                                  interval_h=float(self.interval.value())),
            residual=ResidualError(sigma=float(self.sigma.value())),
        )
        req = SimulateRequest(design=design, seed=int(self.seed.value()))
        self.simulateRequested.emit(req)
