"""Pipeline configuration.

The hardware parameterization of the cell search front end (bit widths,
FFT size, multiplier reuse, detection policy) is held in one immutable
model that is validated once, before any sample is processed.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# NR numerology 0: 15 kHz sub-carrier spacing
SUBCARRIER_SPACING = 15e3

SSS_LEN = 127
PBCH_LEN = 240

SUPPORTED_NFFT = (8, 9)
SUPPORTED_MULT_REUSE = (0, 1, 2, 4, 8, 16, 32)


class PipelineConfig(BaseModel):
    """Construction-time parameters of the cell search pipeline.

    Field names follow the hardware generics they model (``IN_DW`` becomes
    ``in_dw`` and so on). Derived quantities are exposed as properties.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Bus widths (complex, split evenly between real and imaginary parts)
    in_dw: int = Field(32, ge=8, le=48, description="Input sample width in bits")
    out_dw: int = Field(32, ge=16, le=64, description="Output sample width in bits")
    tap_dw: int = Field(32, ge=8, le=48, description="Coefficient width in bits")

    # Correlator
    pss_len: int = Field(128, description="PSS matched filter length")
    algo: Literal[0, 1] = Field(0, description="Complex multiplier variant")
    mult_reuse: int = Field(0, description="MACs per multiplier (0: fully parallel)")

    # Peak detector
    window_len: int = Field(8, ge=1, description="Peak detector window length")
    # Squared magnitudes of correlations against quantization-level noise stay
    # below 2**20 for the default widths
    detection_threshold: int = Field(
        1 << 20, ge=0, description="Absolute floor on the squared correlation magnitude"
    )
    detection_factor: int = Field(
        16, ge=0, description="Required ratio of peak to noise floor (0 disables)"
    )
    noise_floor_shift: int = Field(
        8, ge=0, le=24, description="Averaging shift of the noise floor estimate"
    )

    # FFT / framing
    nfft: int = Field(8, description="log2 of the FFT size")
    half_cp_advance: bool = Field(
        True, description="Start FFT windows half a CP early instead of a full CP"
    )

    # Front end
    base_nfft: int = Field(
        11, ge=8, le=12, description="log2 of the raw stream rate in units of 15 kHz"
    )
    cic_order: int = Field(2, ge=2, le=8, description="CIC integrator/comb stages")
    clocks_per_sample: int = Field(
        1, ge=1, description="Nominal clock ticks between input samples"
    )

    # CFO
    phase_dw: int = Field(24, ge=12, le=32, description="NCO phase accumulator width")
    atan_dw: int = Field(16, ge=8, le=24, description="Arctangent output width")

    @field_validator("in_dw", "out_dw", "tap_dw")
    @classmethod
    def check_even_width(cls, v: int) -> int:
        if v % 2:
            raise ValueError(f"Complex bus widths must be even, got {v}")
        return v

    @field_validator("nfft")
    @classmethod
    def check_nfft(cls, v: int) -> int:
        if v not in SUPPORTED_NFFT:
            raise ValueError(
                f"Unsupported NFFT {v}: only {list(SUPPORTED_NFFT)} are supported"
            )
        return v

    @field_validator("pss_len")
    @classmethod
    def check_pss_len(cls, v: int) -> int:
        if v != 128:
            raise ValueError(f"PSS_LEN must be 128, got {v}")
        return v

    @field_validator("mult_reuse")
    @classmethod
    def check_mult_reuse(cls, v: int) -> int:
        if v not in SUPPORTED_MULT_REUSE:
            raise ValueError(
                f"Unsupported MULT_REUSE {v}: valid values are {list(SUPPORTED_MULT_REUSE)}"
            )
        return v

    @field_validator("cic_order")
    @classmethod
    def check_cic_order(cls, v: int) -> int:
        if v % 2:
            raise ValueError(
                f"CIC order must be even so its group delay is whole samples, got {v}"
            )
        return v

    @model_validator(mode="after")
    def check_consistency(self) -> "PipelineConfig":
        if self.base_nfft < self.nfft:
            raise ValueError(
                f"base_nfft ({self.base_nfft}) must not be smaller than nfft ({self.nfft})"
            )
        ticks = self.total_decimation * self.clocks_per_sample
        if self.mult_reuse > ticks:
            raise ValueError(
                f"MULT_REUSE {self.mult_reuse} needs {self.mult_reuse} ticks per "
                f"correlation sample but only {ticks} are available; raise "
                "clocks_per_sample"
            )
        return self

    # ------------------------------------------------------------------
    # Derived parameters
    # ------------------------------------------------------------------

    @property
    def fft_len(self) -> int:
        return 1 << self.nfft

    @property
    def cp_len(self) -> int:
        """Normal cyclic prefix length at the FFT rate."""
        return 18 * self.fft_len // 256

    @property
    def cp_advance(self) -> int:
        """Samples of CP kept in front of each FFT window."""
        return self.cp_len // 2 if self.half_cp_advance else self.cp_len

    @property
    def symbol_len(self) -> int:
        return self.fft_len + self.cp_len

    @property
    def decimation_factor(self) -> int:
        """Raw stream to FFT rate decimation (2048 / FFT_LEN for the default base)."""
        return 1 << (self.base_nfft - self.nfft)

    @property
    def correlation_decimation(self) -> int:
        """FFT rate to PSS correlation rate decimation."""
        return self.fft_len // self.pss_len

    @property
    def total_decimation(self) -> int:
        return self.decimation_factor * self.correlation_decimation

    @property
    def sample_dw(self) -> int:
        """Width of one part of an input sample."""
        return self.in_dw // 2

    @property
    def fft_dw(self) -> int:
        """Width of one part of an FFT output sample."""
        return self.out_dw // 2

    @property
    def coeff_dw(self) -> int:
        """Width of one part of a coefficient (taps, twiddles, NCO, ramp)."""
        return self.tap_dw // 2

    @property
    def sss_start(self) -> int:
        return self.fft_len // 2 - (SSS_LEN + 1) // 2

    @property
    def pbch_start(self) -> int:
        return self.fft_len // 2 - (PBCH_LEN + 1) // 2

    @property
    def input_rate(self) -> float:
        """Raw stream sampling rate in Hz."""
        return (1 << self.base_nfft) * SUBCARRIER_SPACING

    @property
    def fft_rate(self) -> float:
        return self.fft_len * SUBCARRIER_SPACING

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, path: str) -> "PipelineConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            PipelineConfig instance
        """
        import yaml

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def to_yaml(self, path: str):
        """Save configuration to YAML file.

        Args:
            path: Path where YAML file will be saved
        """
        import yaml

        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)
