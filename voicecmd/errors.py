"""
Exceptions du pipeline de commandes vocales.

Pourquoi: distinguer les erreurs fatales (configuration) des erreurs
recuperables (enregistrement trop court) et des modes degrades (pas de
calibration sur disque).
Comment: une petite hierarchie; chaque classe herite aussi de l'exception
standard la plus proche pour rester compatible avec du code existant.
"""

from __future__ import annotations


class VoiceCommandError(Exception):
    """Base de toutes les erreurs du package."""


class ConfigurationError(VoiceCommandError, ValueError):
    """
    Parametre structurellement invalide (taille de frame, hop, banc mel...).

    Toujours fatale: levee a la construction, jamais pendant le flux.
    """


class InsufficientDataError(VoiceCommandError):
    """
    Enregistrement de calibration inexploitable (trop court, trop long,
    pas assez de frames voisees).

    Recuperable: la session de calibration redemande la meme prise.
    """

    def __init__(self, message: str, frames: int = 0, duration_s: float = 0.0):
        super().__init__(message)
        self.frames = int(frames)
        self.duration_s = float(duration_s)


class MissingTemplateError(VoiceCommandError, FileNotFoundError):
    """Aucune calibration persistee trouvee au demarrage du recognizer."""
