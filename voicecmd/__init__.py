"""
Reconnaissance de deux commandes vocales (JUMP / TURN) par templates MFCC.

Les sous-modules exposent les briques de base :
- config : parametres audio, calibration et reconnaissance (valides).
- audio : decoupage en frames, VAD, E/S WAV.
- features : extraction MFCC (Hamming, FFT, banc mel, log, DCT).
- templates : construction/fusion des templates, seuil auto, stockage JSON.
- recognition : matching competitif temps reel (marge, hysteresis, cooldown).
- calibration : session de calibration guidee.
- inference : pipeline de streaming et boucle micro.
- recording : calibration interactive et clips WAV de test.

Pourquoi ce package:
- calibrer en quelques secondes, puis reconnaitre avec une latence de
  quelques frames (16 ms par frame a 16 kHz).
- garder des dependances minimales (NumPy + sounddevice/soundfile).

Comment l'utiliser (vue rapide):
- lister les micros avec voicecmd/cli/detect_mic.py
- calibrer via voicecmd/cli/calibrate.py
- reconnaitre en temps reel avec voicecmd/cli/run_recognizer.py
- enregistrer des clips de test avec voicecmd/cli/record_clips.py
- rejouer des WAV avec voicecmd/cli/replay_wav.py
"""

__all__ = [
    "audio",
    "calibration",
    "config",
    "errors",
    "features",
    "inference",
    "recognition",
    "recording",
    "templates",
]
