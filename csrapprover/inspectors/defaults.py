from csrapprover.inspectors.altnamesforpod import AltNamesForPod
from csrapprover.inspectors.base import Registry
from csrapprover.inspectors.group import Group
from csrapprover.inspectors.keyusage import KeyUsage
from csrapprover.inspectors.minrsakeysize import MinRSAKeySize
from csrapprover.inspectors.noextensions import NoExtensions
from csrapprover.inspectors.signaturealgorithm import SignatureAlgorithm
from csrapprover.inspectors.subjectispodforuser import SubjectIsPodForUser
from csrapprover.inspectors.username import Username


def default_registry(cluster_domain: str = "cluster.local") -> Registry:
    """
    Every known inspector with its default configuration. cluster_domain is the
    default for the pod-aware inspectors; a per-inspector config still overrides it.
    """
    registry = Registry()
    registry.register(AltNamesForPod(cluster_domain))
    registry.register(Group())
    registry.register(KeyUsage())
    registry.register(MinRSAKeySize())
    registry.register(NoExtensions())
    registry.register(SignatureAlgorithm())
    registry.register(SubjectIsPodForUser(cluster_domain))
    registry.register(Username())
    return registry
