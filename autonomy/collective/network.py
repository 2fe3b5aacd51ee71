"""
Collective experience network.

Caches prompt/response pairs ("experience nodes") and learns from them:
- nearest-match lookup by token similarity,
- replace-if-better insertion with a symmetric similarity graph,
- effectiveness adjusted by user feedback,
- per-user need prediction, prompt suggestions and prompt enhancement.

Every operation is in-memory. Lookups of unknown ids return None instead of
raising. Mutations are serialized by a re-entrant lock and readers receive
copies, so returned objects never alias network state.
"""

import logging
import threading
from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from autonomy.collective.similarity import tokenize, token_similarity
from autonomy.collective.stats import NetworkStats
from autonomy.config import ExperienceConfig
from autonomy.models.experience import (
    Connection,
    ExperienceMetadata,
    ExperienceNode,
    Interaction,
    NetworkSnapshot,
    PredictedNeed,
    PromptSuggestion,
    UserProfile,
    clamp_effectiveness,
    clamp_score,
)

logger = logging.getLogger(__name__)


class ExperienceNetwork:
    """
    Similarity-indexed cache of prompt/response experiences.

    Nodes are kept in insertion order. When two nodes are equally similar to a
    query, the first-inserted one wins.

    Example:
        ```python
        network = ExperienceNetwork()
        node = network.add_experience(
            "optimize react rendering performance",
            "Use React.memo and split large lists",
            80,
            {"provider": "litellm/openai", "model": "gpt-4o-mini", "tags": ["react"]},
        )
        network.record_user_interaction("user-1", node.id, feedback=1.0)
        print(network.enhance_prompt("optimize react rendering performance now"))
        ```
    """

    def __init__(self, config: Optional[ExperienceConfig] = None):
        self.config = config or ExperienceConfig()
        self.stats = NetworkStats()

        self._nodes: "OrderedDict[str, ExperienceNode]" = OrderedDict()
        self._tokens: Dict[str, FrozenSet[str]] = {}
        self._profiles: Dict[str, UserProfile] = {}
        self._lock = threading.RLock()

        logger.info(
            f"ExperienceNetwork initialized: threshold={self.config.similarity_threshold}, "
            f"connection_threshold={self.config.connection_threshold}"
        )

    # ========================================================================
    # LOOKUP
    # ========================================================================

    def find_similar_node(self, prompt: str) -> Optional[ExperienceNode]:
        """
        Find the node whose prompt is most similar to ``prompt``.

        Returns:
            Copy of the best node at or above the similarity threshold, or None
        """
        with self._lock:
            node, _ = self._find_similar(tokenize(prompt), record_lookup=True)
            return node.model_copy(deep=True) if node else None

    def get_node(self, node_id: str) -> Optional[ExperienceNode]:
        with self._lock:
            node = self._nodes.get(node_id)
            return node.model_copy(deep=True) if node else None

    def list_nodes(self) -> List[ExperienceNode]:
        with self._lock:
            return [n.model_copy(deep=True) for n in self._nodes.values()]

    @property
    def node_count(self) -> int:
        with self._lock:
            return len(self._nodes)

    def _find_similar(
        self,
        tokens: FrozenSet[str],
        record_lookup: bool = False
    ) -> Tuple[Optional[ExperienceNode], float]:
        best: Optional[ExperienceNode] = None
        highest = 0.0

        for node_id, node in self._nodes.items():
            similarity = token_similarity(tokens, self._tokens[node_id])
            # Strict comparison keeps the first-inserted node on ties
            if similarity > highest and similarity >= self.config.similarity_threshold:
                highest = similarity
                best = node

        # Insertions search too, but only lookups count toward the hit rate
        if record_lookup:
            if best is None:
                self.stats.record_miss()
            else:
                self.stats.record_hit()
        return best, highest

    # ========================================================================
    # INSERTION
    # ========================================================================

    def add_experience(
        self,
        prompt: str,
        response: str,
        effectiveness: float,
        metadata: Optional[Union[ExperienceMetadata, Dict[str, Any]]] = None
    ) -> ExperienceNode:
        """
        Add a prompt/response pair.

        If a similar node exists and ``effectiveness`` is strictly greater than
        its score, that node's response, effectiveness and timestamp are
        replaced in place. If a similar node exists but is at least as
        effective, nothing changes and that node is returned. Otherwise a new
        node is created and connected to every node whose prompt similarity
        reaches the connection threshold.

        Args:
            prompt: Prompt text
            response: Response text
            effectiveness: Score, clamped to [0, 100]
            metadata: Provider, model, context and tags

        Returns:
            Copy of the updated, kept or created node
        """
        score = clamp_score(effectiveness)
        if metadata is None:
            meta = ExperienceMetadata()
        elif isinstance(metadata, ExperienceMetadata):
            meta = metadata.model_copy(deep=True)
        else:
            meta = ExperienceMetadata.model_validate(metadata)

        tokens = tokenize(prompt)

        with self._lock:
            similar, similarity = self._find_similar(tokens)

            if similar is not None and score > similar.score:
                logger.debug(
                    f"Replacing node {similar.id} (similarity {similarity:.2f}): "
                    f"effectiveness {similar.score} -> {score}"
                )
                similar.response = response
                similar.set_score(score)
                similar.metadata.timestamp = datetime.now()
                self.stats.record_replacement()
                return similar.model_copy(deep=True)

            if similar is not None:
                logger.debug(
                    f"Kept node {similar.id}: effectiveness {score} does not beat {similar.score}"
                )
                self.stats.record_rejected_update()
                return similar.model_copy(deep=True)

            node = ExperienceNode(
                prompt=prompt,
                response=response,
                effectiveness=clamp_effectiveness(score),
                score=score,
                metadata=meta,
            )

            threshold = self.config.connection_threshold
            links = []
            for other_id in self._nodes:
                strength = token_similarity(tokens, self._tokens[other_id])
                if strength > 0 and strength >= threshold:
                    links.append((other_id, strength))

            self._nodes[node.id] = node
            self._tokens[node.id] = tokens
            for other_id, strength in links:
                self._connect(node.id, other_id, strength)

            self.stats.record_insert()
            logger.debug(f"Added node {node.id} with {len(links)} connections")
            return node.model_copy(deep=True)

    def _connect(self, source_id: str, target_id: str, strength: float):
        """Create or update an undirected edge; both ends carry the same strength."""
        if source_id == target_id:
            return
        source = self._nodes.get(source_id)
        target = self._nodes.get(target_id)
        if source is None or target is None:
            return

        strength = max(0.0, min(1.0, strength))
        for node, other_id in ((source, target_id), (target, source_id)):
            existing = node.connection_to(other_id)
            if existing is not None:
                existing.strength = strength
            else:
                node.connections.append(Connection(node_id=other_id, strength=strength))

    # ========================================================================
    # USERS & FEEDBACK
    # ========================================================================

    def get_user_profile(self, user_id: str) -> UserProfile:
        """Get a copy of a user's profile, creating it on first reference."""
        with self._lock:
            return self._get_or_create_profile(user_id).model_copy(deep=True)

    def _get_or_create_profile(self, user_id: str) -> UserProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            profile = UserProfile(id=user_id)
            self._profiles[user_id] = profile
            logger.debug(f"Created profile for user {user_id}")
        return profile

    def record_user_interaction(
        self,
        user_id: str,
        node_id: str,
        feedback: Optional[float] = None
    ) -> UserProfile:
        """
        Record that a user interacted with a node.

        Feedback in [-1, 1] moves the node's running score by
        ``feedback * feedback_scale``, clamped to [0, 100]; the exposed
        effectiveness is that score rounded. Predicted needs
        are then recomputed from the most recent interactions.

        Args:
            user_id: User identifier
            node_id: Referenced node (may no longer exist)
            feedback: Optional score in [-1, 1]; values outside are clamped

        Returns:
            Copy of the updated profile
        """
        if feedback is not None:
            feedback = max(-1.0, min(1.0, float(feedback)))

        with self._lock:
            profile = self._get_or_create_profile(user_id)
            profile.interaction_history.append(
                Interaction(node_id=node_id, feedback=feedback)
            )

            if feedback is not None:
                node = self._nodes.get(node_id)
                if node is not None:
                    adjustment = feedback * self.config.feedback_scale
                    node.set_score(node.score + adjustment)
                    self.stats.record_feedback()
                    logger.debug(
                        f"Feedback {feedback:+.2f} from {user_id} on {node_id}: "
                        f"effectiveness now {node.effectiveness}"
                    )
                else:
                    logger.debug(f"Feedback for unknown node {node_id} ignored")

            self._update_predicted_needs(profile)
            return profile.model_copy(deep=True)

    def _update_predicted_needs(self, profile: UserProfile):
        window = profile.interaction_history[-self.config.prediction_window:]
        recent_nodes = [
            self._nodes[i.node_id] for i in window if i.node_id in self._nodes
        ]

        if not recent_nodes:
            profile.predicted_needs = []
            return

        tag_counts: Dict[str, int] = {}
        for node in recent_nodes:
            for tag in node.metadata.tags:
                tag_counts[tag] = tag_counts.get(tag, 0) + 1

        # sorted() is stable: equal counts keep first-seen order
        top_tags = sorted(tag_counts.items(), key=lambda kv: kv[1], reverse=True)
        top_tags = top_tags[:self.config.max_predicted_needs]

        needs = []
        for tag, count in top_tags:
            tagged = [n for n in self._nodes.values() if tag in n.metadata.tags]
            tagged.sort(key=lambda n: n.score, reverse=True)
            needs.append(PredictedNeed(
                need=tag,
                confidence=count / len(recent_nodes),
                suggested_node_ids=[n.id for n in tagged[:self.config.suggestions_per_need]],
            ))
        profile.predicted_needs = needs

    # ========================================================================
    # PROMPT ASSISTANCE
    # ========================================================================

    def enhance_prompt(self, prompt: str, user_id: Optional[str] = None) -> str:
        """
        Append reference material from the most similar node, if any.

        When ``user_id`` is given, the match is recorded as an interaction
        without feedback.
        """
        with self._lock:
            node, _ = self._find_similar(tokenize(prompt), record_lookup=True)
            if node is None:
                return prompt

            if user_id:
                self.record_user_interaction(user_id, node.id)

            context = node.metadata.context or "Not specified"
            aspects = ", ".join(node.metadata.tags) or "None"

        return (
            f"{prompt}\n\n"
            f"For reference, here are elements that may be useful:\n"
            f"- Context: {context}\n"
            f"- Key aspects: {aspects}"
        )

    def suggest_prompts(self, user_id: str) -> List[PromptSuggestion]:
        """
        Suggest prompts from a user's predicted needs.

        Confidence is the need's confidence scaled by the node's effectiveness
        fraction. Nodes that no longer exist are skipped.
        """
        with self._lock:
            profile = self._get_or_create_profile(user_id)
            suggestions = []
            for need in profile.predicted_needs:
                for node_id in need.suggested_node_ids:
                    node = self._nodes.get(node_id)
                    if node is None:
                        continue
                    suggestions.append(PromptSuggestion(
                        prompt=node.prompt,
                        confidence=need.confidence * (node.score / 100),
                        description=f'Based on your interest in "{need.need}"',
                        node_id=node.id,
                    ))
            return suggestions

    # ========================================================================
    # REPORTING & PERSISTENCE HANDOFF
    # ========================================================================

    def generate_network_report(self) -> Dict[str, Any]:
        """Summary of the network: sizes, most effective nodes, most used tags."""
        size = self.config.report_size
        with self._lock:
            tag_counts: Dict[str, int] = {}
            for node in self._nodes.values():
                for tag in node.metadata.tags:
                    tag_counts[tag] = tag_counts.get(tag, 0) + 1

            top_tags = sorted(tag_counts.items(), key=lambda kv: kv[1], reverse=True)[:size]
            top_nodes = sorted(self._nodes.values(), key=lambda n: n.score, reverse=True)[:size]

            return {
                "node_count": len(self._nodes),
                "user_count": len(self._profiles),
                "edge_count": sum(len(n.connections) for n in self._nodes.values()) // 2,
                "top_nodes": [
                    {
                        "id": n.id,
                        "effectiveness": n.effectiveness,
                        "tags": list(n.metadata.tags),
                        "connection_count": len(n.connections),
                    }
                    for n in top_nodes
                ],
                "top_tags": [{"tag": tag, "count": count} for tag, count in top_tags],
                "stats": self.stats.get_stats(),
            }

    def export_network_data(self) -> NetworkSnapshot:
        with self._lock:
            return NetworkSnapshot(
                nodes=[n.model_copy(deep=True) for n in self._nodes.values()],
                user_profiles=[p.model_copy(deep=True) for p in self._profiles.values()],
            )

    def import_network_data(self, data: Union[NetworkSnapshot, Dict[str, Any]]) -> Dict[str, int]:
        """
        Merge exported nodes and profiles into this network.

        Nodes and profiles with existing ids are overwritten. Connections are
        repaired afterwards: edges to unknown nodes and self-loops are dropped,
        and one-sided edges are mirrored.

        Returns:
            Counts of imported nodes and profiles
        """
        snapshot = data if isinstance(data, NetworkSnapshot) else NetworkSnapshot.model_validate(data)

        with self._lock:
            for node in snapshot.nodes:
                self._nodes[node.id] = node.model_copy(deep=True)
                self._tokens[node.id] = tokenize(node.prompt)
            for profile in snapshot.user_profiles:
                self._profiles[profile.id] = profile.model_copy(deep=True)
            self._repair_connections()

        logger.info(
            f"Imported {len(snapshot.nodes)} nodes and {len(snapshot.user_profiles)} profiles"
        )
        return {"nodes": len(snapshot.nodes), "user_profiles": len(snapshot.user_profiles)}

    def _repair_connections(self):
        edges: Dict[Tuple[str, str], float] = {}
        for node in self._nodes.values():
            for conn in node.connections:
                if conn.node_id == node.id or conn.node_id not in self._nodes:
                    continue
                key = tuple(sorted((node.id, conn.node_id)))
                edges[key] = max(edges.get(key, 0.0), conn.strength)

        for node in self._nodes.values():
            node.connections = []
        for (a, b), strength in edges.items():
            self._connect(a, b, strength)

    def save_to_file(self, path: Union[str, Path]) -> Path:
        """Write an exported snapshot as JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.export_network_data().model_dump_json(indent=2), encoding="utf-8")
        logger.info(f"Saved experience network to {path}")
        return path

    def load_from_file(self, path: Union[str, Path]) -> Dict[str, int]:
        """Import a snapshot previously written by ``save_to_file``."""
        snapshot = NetworkSnapshot.model_validate_json(Path(path).read_text(encoding="utf-8"))
        return self.import_network_data(snapshot)
