"""
Pipeline temps reel: echantillons -> frames voisees -> MFCC -> decision.

Pourquoi: isoler la logique de streaming (buffer, VAD, extraction,
recognizer) pour la reutiliser depuis une CLI, un service ou un rejeu WAV.
Comment: chaque frame est traitee entierement avant la suivante; le micro
alimente la boucle via un canal a une place qui jette des blocs entiers.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from voicecmd import audio
from voicecmd.audio import Frame, FrameSegmenter
from voicecmd.config import VoiceConfig
from voicecmd.features import FeatureExtractor
from voicecmd.recognition import Clock, CompetitiveRecognizer, FireEvent
from voicecmd.templates import TemplatePair

logger = logging.getLogger(__name__)

TimedVector = tuple[float, np.ndarray]


class FeatureFrontEnd:
    """
    Segmenteur + extracteur: produit les vecteurs des frames voisees.

    Pourquoi: partage par la calibration et la reconnaissance, pour garantir
    les memes dimensions des deux cotes.
    Comment: horodatage par l'horloge, ou par la position dans le flux
    (stream_time=True) pour un rejeu exact a l'echantillon pres.
    """

    def __init__(
        self,
        config: VoiceConfig | None = None,
        clock: Clock = time.monotonic,
        stream_time: bool = False,
        on_energy: Optional[Callable[[float], None]] = None,
    ):
        self.config = config or VoiceConfig()
        self.clock = clock
        self.stream_time = stream_time
        self.segmenter = FrameSegmenter(self.config.audio, on_energy=on_energy)
        self.extractor = FeatureExtractor(self.config.audio)

    def frame_time(self, frame: Frame) -> float:
        # Instant de fin de frame dans le flux, en secondes.
        cfg = self.config.audio
        return (frame.index * cfg.hop_size + cfg.frame_size) / float(cfg.sample_rate)

    def push(self, samples: np.ndarray, now: Optional[float] = None) -> list[TimedVector]:
        vectors: list[TimedVector] = []
        for frame in self.segmenter.push(samples):
            if not frame.voiced:
                continue
            vectors.append((self.timestamp(frame, now), self.extractor.extract(frame.samples)))
        return vectors

    def timestamp(self, frame: Frame, now: Optional[float]) -> float:
        if now is not None:
            return float(now)
        if self.stream_time:
            return self.frame_time(frame)
        return self.clock()

    def reset(self) -> None:
        self.segmenter.reset()


class VoicePipeline:
    """
    Assemble front-end et recognizer.

    Pourquoi: un seul point d'entree "bloc audio -> evenements".
    Comment: process() traite chaque frame voisee dans l'ordre; apres stop(),
    plus aucun evenement n'est produit, meme si une serie etait en cours.
    """

    def __init__(
        self,
        templates: TemplatePair,
        config: VoiceConfig | None = None,
        clock: Clock = time.monotonic,
        stream_time: bool = False,
        on_fire: Optional[Callable[[FireEvent], None]] = None,
        on_energy: Optional[Callable[[float], None]] = None,
    ):
        self.config = config or VoiceConfig()
        self.front_end = FeatureFrontEnd(self.config, clock=clock, stream_time=stream_time, on_energy=on_energy)
        self.recognizer = CompetitiveRecognizer(templates, self.config.recognizer, clock=clock, on_fire=on_fire)

    @property
    def stopped(self) -> bool:
        return self.recognizer.stopped

    def process(
        self,
        samples: np.ndarray,
        now: Optional[float] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> list[FireEvent]:
        """
        Traite un bloc; `should_stop` est consulte avant chaque frame.

        Une annulation demandee en cours de bloc (par exemple depuis on_fire)
        stoppe le pipeline avant la frame suivante.
        """
        events: list[FireEvent] = []
        for frame in self.front_end.segmenter.push(samples):
            if should_stop is not None and should_stop():
                self.stop()
            if self.stopped:
                break
            if not frame.voiced:
                continue
            vector = self.front_end.extractor.extract(frame.samples)
            event = self.recognizer.process(vector, self.front_end.timestamp(frame, now))
            if event is not None:
                events.append(event)
        return events

    def features(self, samples: np.ndarray, now: Optional[float] = None) -> list[TimedVector]:
        # Vecteurs seuls, le recognizer n'est pas sollicite.
        return self.front_end.push(samples, now)

    def stop(self) -> None:
        self.recognizer.stop()

    def reset(self) -> None:
        self.front_end.reset()
        self.recognizer.reset()


def replay_samples(
    samples: np.ndarray,
    templates: TemplatePair,
    config: VoiceConfig | None = None,
    block_size: Optional[int] = None,
) -> list[FireEvent]:
    """
    Rejoue un signal complet comme s'il arrivait du micro.

    Pourquoi: tester une calibration sur des enregistrements hors ligne.
    Comment: horloge = position dans le flux, blocs de la taille du hop.
    """
    config = config or VoiceConfig()
    pipeline = VoicePipeline(templates, config, stream_time=True)
    events: list[FireEvent] = []
    for block in audio.iter_blocks(samples, block_size or config.audio.hop_size):
        events.extend(pipeline.process(block))
    return events


def replay_file(path: Path, templates: TemplatePair, config: VoiceConfig | None = None) -> list[FireEvent]:
    """Charge un WAV, le ramene a la frequence du pipeline et le rejoue."""
    config = config or VoiceConfig()
    samples, sample_rate = audio.load_mono_audio(path)
    samples = audio.resample_linear(samples, sample_rate, config.audio.sample_rate)
    events = replay_samples(samples, templates, config)
    logger.info("Rejeu %s: %d evenement(s)", path.name, len(events))
    return events


class BlockChannel:
    """
    Canal a une place entre le thread micro et la boucle de traitement.

    Pourquoi: sous charge, mieux vaut perdre un bloc entier que melanger
    des echantillons de blocs differents.
    Comment: si la place est prise, l'ancien bloc est jete et le nouveau
    porte un drapeau "trou" qui demande au consommateur de vider son buffer.
    """

    def __init__(self):
        self.queue: queue.Queue[tuple[np.ndarray, bool]] = queue.Queue(maxsize=1)
        self.dropped = 0
        self.pending_gap = False

    def put(self, block: np.ndarray) -> None:
        try:
            self.queue.put_nowait((block, self.pending_gap))
            self.pending_gap = False
            return
        except queue.Full:
            pass

        dropped_old = False
        try:
            self.queue.get_nowait()
            dropped_old = True
            self.dropped += 1
        except queue.Empty:
            pass
        try:
            self.queue.put_nowait((block, self.pending_gap or dropped_old))
            self.pending_gap = False
        except queue.Full:
            # Ce bloc est perdu aussi: le suivant signalera le trou.
            self.dropped += 1
            self.pending_gap = True

    def get(self, timeout: float) -> Optional[tuple[np.ndarray, bool]]:
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def clear(self) -> None:
        # Jette le bloc en attente; le suivant repart d'un buffer vide.
        while True:
            try:
                self.queue.get_nowait()
            except queue.Empty:
                return


def open_input_stream(channel: BlockChannel, mic_index: Optional[int], sample_rate: int, block_size: int):
    """
    Ouvre le flux micro sounddevice qui alimente `channel`.

    Pourquoi: partage par la detection et la calibration.
    Comment: callback -> 1er canal (mono) copie en float32 -> channel.put.
    """
    import sounddevice as sd

    def callback(indata, frames, time_info, status):
        if status:
            logger.debug("Statut micro: %s", status)
        channel.put(indata[:, 0].astype(np.float32))

    return sd.InputStream(
        device=mic_index,
        channels=1,
        samplerate=sample_rate,
        blocksize=block_size,
        callback=callback,
    )


def run_realtime_detection(
    templates: TemplatePair,
    config: VoiceConfig | None = None,
    mic_index: Optional[int] = None,
    block_ms: float = 16.0,
    stop_event: Optional[threading.Event] = None,
    on_fire: Optional[Callable[[FireEvent], None]] = None,
) -> VoicePipeline:
    """
    Boucle bloquante: lit le micro, traite chaque bloc et imprime les commandes.

    Pourquoi: fournir une demo temps reel directement depuis le terminal.
    Comment: InputStream sounddevice + canal a une place; Ctrl+C ou
    stop_event arretent la boucle, et le pipeline est stoppe avant de sortir.
    """
    config = config or VoiceConfig()
    block_size = int(round(config.audio.sample_rate * (block_ms / 1000.0)))
    if block_size <= 0:
        raise SystemExit("block_ms invalide.")

    stop_event = stop_event or threading.Event()
    pipeline = VoicePipeline(templates, config, on_fire=on_fire)
    channel = BlockChannel()

    try:
        with open_input_stream(channel, mic_index, config.audio.sample_rate, block_size):
            logger.info(
                "Ecoute: %d Hz, frame %.1f ms, hop %.1f ms",
                config.audio.sample_rate,
                config.audio.frame_duration_s * 1000.0,
                config.audio.hop_duration_s * 1000.0,
            )
            while not stop_event.is_set():
                item = channel.get(timeout=0.1)
                if item is None:
                    continue
                block, gap = item
                if gap:
                    # Bloc precedent perdu: ne pas recoller des echantillons disjoints.
                    pipeline.front_end.reset()
                for event in pipeline.process(block, should_stop=stop_event.is_set):
                    print(event, flush=True)
    except KeyboardInterrupt:
        pass
    finally:
        pipeline.stop()
        if channel.dropped:
            logger.warning("%d bloc(s) micro perdu(s) sous charge", channel.dropped)
    return pipeline
