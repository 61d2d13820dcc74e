"""
Extraction MFCC compacte (quelques coefficients par frame voisee).

Pourquoi: representer la forme spectrale court terme d'une frame avec un
vecteur de petite dimension, comparable par distance euclidienne.
Comment: Hamming -> spectre de magnitude -> puissance -> banc mel ->
log -> projection cosinus (DCT-II), avec un plancher pour rester fini.
"""

from __future__ import annotations

import numpy as np

from voicecmd.config import AudioConfig
from voicecmd.errors import ConfigurationError

# Plancher applique a chaque sortie du banc mel (log toujours fini).
MEL_FLOOR = 1e-10
# En dessous de cette norme, un vecteur est considere sans information.
NORM_EPSILON = 1e-8


def hz_to_mel(hz):
    return 2595.0 * np.log10(1.0 + np.asarray(hz, dtype=np.float64) / 700.0)


def mel_to_hz(mel):
    return 700.0 * (10.0 ** (np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0)


def hamming_window(size: int) -> np.ndarray:
    """
    Fenetre de Hamming symetrique de taille exacte `size`.

    Pourquoi: attenuer les fuites spectrales dues aux bords de frame.
    Comment: 0.54 - 0.46 cos(2 pi i / (N - 1)).
    """
    if size <= 0:
        raise ConfigurationError(f"Taille de fenetre invalide: {size}")
    if size == 1:
        return np.ones((1,), dtype=np.float64)
    i = np.arange(size, dtype=np.float64)
    return 0.54 - 0.46 * np.cos(2.0 * np.pi * i / (size - 1))


def mel_filterbank(n_mels: int, frame_size: int, sample_rate: int) -> np.ndarray:
    """
    Banc de filtres triangulaires espaces uniformement en mel, de 0 Hz a Nyquist.

    Pourquoi: regrouper les bins du spectre selon la perception humaine.
    Comment: n_mels + 2 points en mel, convertis en bins FFT par
    floor((F + 1) * hz / sr), puis rampes montante/descendante. La matrice
    couvre exactement F/2 bins, soit la sortie de magnitude_spectrum.
    """
    n_bins = frame_size // 2
    mel_points = np.linspace(hz_to_mel(0.0), hz_to_mel(sample_rate / 2.0), n_mels + 2)
    hz_points = mel_to_hz(mel_points)
    bins = np.floor((frame_size + 1) * hz_points / sample_rate).astype(int)

    filters = np.zeros((n_mels, n_bins), dtype=np.float64)
    for i in range(n_mels):
        left, center, right = bins[i], bins[i + 1], bins[i + 2]
        # Rampe montante (filtre vide si left == center).
        for k in range(max(left, 0), min(center, n_bins)):
            filters[i, k] = (k - left) / float(center - left)
        # Rampe descendante.
        for k in range(max(center, 0), min(right, n_bins)):
            filters[i, k] = (right - k) / float(right - center)
    return filters


def magnitude_spectrum(frame: np.ndarray, method: str = "fft") -> np.ndarray:
    """
    Spectre de magnitude sur F echantillons -> F/2 bins non negatifs.

    "fft": numpy rfft, O(F log F), pour le temps reel.
    "dft": DFT directe O(F^2), plus lente, utile pour valider la FFT.
    """
    x = np.asarray(frame, dtype=np.float64).reshape(-1)
    n = x.size
    half = n // 2
    if method == "fft":
        return np.abs(np.fft.rfft(x))[:half]
    if method == "dft":
        k = np.arange(half, dtype=np.float64)[:, np.newaxis]
        t = np.arange(n, dtype=np.float64)[np.newaxis, :]
        angle = 2.0 * np.pi * k * t / n
        re = np.cos(angle) @ x
        im = -np.sin(angle) @ x
        return np.sqrt(re * re + im * im)
    raise ConfigurationError(f"Methode spectrale inconnue: {method!r}")


def dct_basis(n_coeffs: int, n_mels: int) -> np.ndarray:
    # cos(k (n + 0.5) pi / M), k = 0..D-1, n = 0..M-1.
    k = np.arange(n_coeffs, dtype=np.float64)[:, np.newaxis]
    n = np.arange(n_mels, dtype=np.float64)[np.newaxis, :]
    return np.cos(k * (n + 0.5) * np.pi / n_mels)


def sanitize(values: np.ndarray) -> np.ndarray:
    """Remplace toute valeur non finie par 0."""
    values = np.asarray(values, dtype=np.float64)
    return np.where(np.isfinite(values), values, 0.0)


def normalize(vector: np.ndarray) -> np.ndarray:
    """
    Normalisation L2 (invariance au volume).

    Pourquoi: seule la forme spectrale doit compter dans les distances.
    Comment: division par la norme; un vecteur quasi nul (< 1e-8) est
    renvoye tel quel (copie) plutot que divise par ~0.
    """
    v = sanitize(vector)
    magnitude = float(np.linalg.norm(v))
    if magnitude < NORM_EPSILON:
        return v.copy()
    return v / magnitude


class FeatureExtractor:
    """
    Transforme une frame voisee (F echantillons) en D coefficients.

    Pourquoi: la fenetre, le banc mel et la base DCT dependent de F; les
    calculer une fois par extracteur garantit qu'ils restent alignes.
    Comment: tout est construit dans __init__ a partir d'une AudioConfig
    et n'est plus modifie ensuite. Une autre taille de frame demande un
    autre extracteur.
    """

    def __init__(self, config: AudioConfig | None = None):
        self.config = config or AudioConfig()
        self.frame_size = self.config.frame_size
        self.window = hamming_window(self.frame_size)
        self.filterbank = mel_filterbank(self.config.n_mels, self.frame_size, self.config.sample_rate)
        self.basis = dct_basis(self.config.n_coeffs, self.config.n_mels)

        # Alignement banc mel / spectre: un decalage corromprait tout en silence.
        if self.filterbank.shape[1] != self.config.n_bins:
            raise ConfigurationError(
                f"Banc mel sur {self.filterbank.shape[1]} bins, spectre sur {self.config.n_bins}"
            )
        for arr in (self.window, self.filterbank, self.basis):
            arr.setflags(write=False)

    @property
    def dimension(self) -> int:
        return self.config.n_coeffs

    def log_mel(self, frame: np.ndarray) -> np.ndarray:
        """Energies log-mel (M valeurs) d'une frame."""
        x = np.asarray(frame, dtype=np.float64).reshape(-1)
        if x.size != self.frame_size:
            raise ConfigurationError(
                f"Frame de {x.size} echantillons pour un extracteur de {self.frame_size}"
            )
        # Fenetrage sur une copie: la frame appelante reste intacte.
        windowed = x * self.window
        power = magnitude_spectrum(windowed, self.config.spectrum) ** 2
        if power.size != self.filterbank.shape[1]:
            raise ConfigurationError(
                f"Spectre de {power.size} bins pour un banc mel de {self.filterbank.shape[1]}"
            )
        mel = np.maximum(self.filterbank @ power, MEL_FLOOR)
        return np.log(mel)

    def extract(self, frame: np.ndarray) -> np.ndarray:
        coeffs = self.basis @ self.log_mel(frame)
        return sanitize(coeffs)

    def extract_many(self, frames) -> np.ndarray:
        """Empile les vecteurs de plusieurs frames (shape [N, D])."""
        vectors = [self.extract(f) for f in frames]
        if not vectors:
            return np.zeros((0, self.dimension), dtype=np.float64)
        return np.vstack(vectors)
