"""
Curated medication knowledge.

Contains the tables the engine falls back on when registries are silent:
- Category keywords and the critical-category list (one criticality model)
- Known critical interaction pairs, including common supplements
- Age-band, condition, pregnancy-category and food rules
- Allergen classes
- A small offline formulary of frequently scanned medications

Matching is by name (generic, brand, active ingredient) or by pharmacologic
class keyword, always case-insensitive.
"""
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from medsafe.constants import SEVERITY_WEIGHTS, SeverityLevel


# ==================== CATEGORIES ====================

# Ordered: the first category whose keyword appears in a pharmacologic
# class wins, so narrower classes come before broad ones.
CATEGORY_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("Anticoagulant", (
        "anticoagulant", "vitamin k antagonist", "factor xa inhibitor", "thrombin inhibitor",
        "heparin", "platelet", "antithrombotic",
    )),
    ("Oncology", (
        "antineoplastic", "kinase inhibitor", "oncolog", "chemotherap", "folate analog",
        "antimetabolite", "alkylating",
    )),
    ("Immunosuppressant", ("immunosuppress", "calcineurin inhibitor")),
    ("Antiretroviral", ("antiretroviral", "hiv", "reverse transcriptase")),
    ("Seizure/Epilepsy", ("anti-epileptic", "antiepileptic", "anticonvulsant", "seizure", "epilep")),
    ("Antidepressant", (
        "antidepress", "serotonin reuptake", "norepinephrine reuptake", "monoamine oxidase",
        "tricyclic", "aminoketone",
    )),
    ("Antipsychotic", ("antipsychotic", "neuroleptic", "mood stabilizer")),
    ("Diabetes", (
        "diabet", "insulin", "biguanide", "sulfonylurea", "hypoglycemic", "sodium-glucose",
        "sglt2", "dipeptidyl peptidase", "glp-1", "glucagon-like peptide", "thiazolidinedione",
        "meglitinide",
    )),
    ("Hormone/Thyroid", (
        "thyroid", "thyroxine", "hormone", "estrogen", "progestin", "androgen",
        "corticosteroid", "glucocorticoid",
    )),
    ("Antibiotic", (
        "antibacterial", "antibiotic", "penicillin", "cephalosporin", "macrolide", "quinolone",
        "tetracycline", "aminoglycoside", "sulfonamide",
    )),
    ("Cardiovascular", (
        "cardio", "antihypertensive", "adrenergic blocker", "beta blocker", "calcium channel blocker",
        "angiotensin", "ace inhibitor", "antiarrhythmic", "hmg-coa reductase", "cardiac glycoside",
        "diuretic", "vasodilator", "nitrate",
    )),
]

CRITICAL_CATEGORIES = frozenset(name for name, _ in CATEGORY_KEYWORDS)

SUPPLEMENT_KEYWORDS = ("supplement", "herbal", "vitamin", "mineral", "botanical")

GENERAL_CATEGORY = "General"
SUPPLEMENT_CATEGORY = "Supplement"
UNKNOWN_CATEGORY = "Unknown"


def categorize(pharm_classes: Iterable[str]) -> str:
    """Derive a category from pharmacologic class strings."""
    classes = [c.lower() for c in pharm_classes if c]
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in c for c in classes for k in keywords):
            return category
    if any(k in c for c in classes for k in SUPPLEMENT_KEYWORDS):
        return SUPPLEMENT_CATEGORY
    return GENERAL_CATEGORY


def is_critical_category(category: Optional[str]) -> bool:
    return bool(category) and category in CRITICAL_CATEGORIES


# ==================== DRUG GROUPS ====================

@dataclass(frozen=True)
class DrugGroup:
    """A set of medications identified by name or class keyword."""
    label: str
    names: frozenset
    class_keywords: Tuple[str, ...] = ()

    def matches(self, terms: Sequence[str], pharm_classes: Sequence[str] = ()) -> bool:
        for term in terms:
            if any(_contains_word(term, name) for name in self.names):
                return True
        classes = [c.lower() for c in pharm_classes]
        return any(k in c for c in classes for k in self.class_keywords)


_APOSTROPHES = re.compile(r"['`‘’ʼ]")
_SEPARATORS = re.compile(r"[.,()]+")


def normalize_term(text: str) -> str:
    """Lower-case, drop apostrophes and fold dots/commas into single spaces."""
    text = _APOSTROPHES.sub("", (text or "").lower())
    return " ".join(_SEPARATORS.sub(" ", text).split())


def _contains_word(term: str, name: str) -> bool:
    term, name = normalize_term(term), normalize_term(name)
    if term == name:
        return True
    return re.search(rf"(?<![a-z]){re.escape(name)}(?![a-z])", term) is not None


def _group(label: str, names: Iterable[str], *class_keywords: str) -> DrugGroup:
    return DrugGroup(label=label, names=frozenset(n.lower() for n in names), class_keywords=class_keywords)


MAOI = _group("MAO inhibitor", [
    "phenelzine", "tranylcypromine", "isocarboxazid", "selegiline", "rasagiline", "moclobemide", "linezolid",
], "monoamine oxidase inhibitor")
SSRI = _group("SSRI", [
    "sertraline", "fluoxetine", "paroxetine", "citalopram", "escitalopram", "fluvoxamine",
], "serotonin reuptake inhibitor")
SNRI = _group("SNRI", [
    "venlafaxine", "desvenlafaxine", "duloxetine", "milnacipran", "levomilnacipran",
], "norepinephrine reuptake inhibitor")
SEROTONERGIC_OPIOIDS = _group("serotonergic opioid", [
    "tramadol", "meperidine", "methadone", "tapentadol", "fentanyl",
])
TRIPTANS = _group("triptan", ["sumatriptan", "rizatriptan", "zolmitriptan", "eletriptan"])
VKA = _group("vitamin K antagonist", ["warfarin", "acenocoumarol"], "vitamin k antagonist")
DOAC = _group("direct oral anticoagulant", [
    "apixaban", "rivaroxaban", "dabigatran", "edoxaban",
], "factor xa inhibitor", "direct thrombin inhibitor")
NSAID = _group("NSAID", [
    "ibuprofen", "naproxen", "diclofenac", "celecoxib", "meloxicam", "indomethacin", "ketorolac", "aspirin",
], "nonsteroidal anti-inflammatory")
ANTIPLATELET = _group("antiplatelet", [
    "clopidogrel", "prasugrel", "ticagrelor", "aspirin", "dipyridamole",
], "platelet aggregation inhibitor", "p2y12")
PDE5 = _group("PDE5 inhibitor", ["sildenafil", "tadalafil", "vardenafil", "avanafil"], "phosphodiesterase 5")
NITRATES = _group("nitrate", [
    "nitroglycerin", "isosorbide mononitrate", "isosorbide dinitrate", "amyl nitrite",
], "nitrate vasodilator")
CYP3A4_STATINS = _group("CYP3A4-metabolised statin", ["simvastatin", "lovastatin"])
STATINS = _group("statin", [
    "simvastatin", "lovastatin", "atorvastatin", "rosuvastatin", "pravastatin", "pitavastatin",
], "hmg-coa reductase inhibitor")
STRONG_CYP3A4_INHIBITORS = _group("strong CYP3A4 inhibitor", [
    "clarithromycin", "erythromycin", "itraconazole", "ketoconazole", "posaconazole", "ritonavir", "cobicistat",
])
METHOTREXATE = _group("methotrexate", ["methotrexate"])
TRIMETHOPRIM = _group("trimethoprim", ["trimethoprim", "sulfamethoxazole"])
LITHIUM = _group("lithium", ["lithium"])
ACE_ARB = _group("ACE inhibitor / ARB", [
    "lisinopril", "enalapril", "ramipril", "captopril", "benazepril", "losartan", "valsartan",
    "irbesartan", "olmesartan", "candesartan", "telmisartan",
], "angiotensin converting enzyme inhibitor", "angiotensin 2 receptor blocker")
POTASSIUM_SPARING = _group("potassium-sparing diuretic", [
    "spironolactone", "eplerenone", "amiloride", "triamterene",
], "aldosterone antagonist", "potassium-sparing")
BENZODIAZEPINES = _group("benzodiazepine", [
    "alprazolam", "lorazepam", "diazepam", "clonazepam", "temazepam", "chlordiazepoxide", "midazolam",
], "benzodiazepine")
OPIOIDS = _group("opioid", [
    "oxycodone", "hydrocodone", "morphine", "codeine", "tramadol", "fentanyl", "methadone",
    "hydromorphone", "oxymorphone", "tapentadol", "meperidine",
], "opioid agonist")
CONTRACEPTIVES = _group("hormonal contraceptive", [
    "ethinyl estradiol", "levonorgestrel", "norethindrone", "norgestimate", "drospirenone", "desogestrel",
], "progestin", "estrogen")
CALCINEURIN_INHIBITORS = _group("calcineurin inhibitor", ["cyclosporine", "tacrolimus"], "calcineurin inhibitor")
SEDATIVE_HYPNOTICS = _group("sedative", [
    "zolpidem", "eszopiclone", "zaleplon", "alprazolam", "lorazepam", "diazepam", "clonazepam", "temazepam",
])
DIGOXIN = _group("digoxin", ["digoxin"], "cardiac glycoside")
METFORMIN = _group("metformin", ["metformin"], "biguanide")
NITROIMIDAZOLES = _group("nitroimidazole", ["metronidazole", "tinidazole"])
TETRACYCLINES = _group("tetracycline", ["tetracycline", "doxycycline", "minocycline"], "tetracycline-class")
FLUOROQUINOLONES = _group("fluoroquinolone", [
    "ciprofloxacin", "levofloxacin", "moxifloxacin", "ofloxacin",
], "quinolone antibacterial")
LEVOTHYROXINE = _group("levothyroxine", ["levothyroxine", "liothyronine"], "thyroxine")
ACETAMINOPHEN = _group("acetaminophen", ["acetaminophen", "paracetamol"])
CALCIUM_CHANNEL_BLOCKERS_3A4 = _group("dihydropyridine calcium channel blocker", [
    "felodipine", "nifedipine", "nisoldipine",
])

# Supplements
ST_JOHNS_WORT = _group("St. John's Wort", ["st johns wort", "st john wort", "saint johns wort", "hypericum"])
GINKGO = _group("ginkgo", ["ginkgo", "ginkgo biloba"])
GARLIC = _group("garlic supplement", ["garlic"])
FISH_OIL = _group("fish oil", ["fish oil", "omega-3", "omega 3"])
TURMERIC = _group("turmeric", ["turmeric", "curcumin"])
FIVE_HTP = _group("5-HTP", ["5-htp", "5-hydroxytryptophan", "l-tryptophan", "tryptophan"])
SAME = _group("SAMe", ["same", "s-adenosylmethionine", "s-adenosyl methionine"])
KAVA = _group("kava", ["kava"])
VALERIAN = _group("valerian", ["valerian"])
GINSENG = _group("ginseng", ["ginseng"])
VITAMIN_K = _group("vitamin K", ["vitamin k", "phytonadione"])
BERBERINE = _group("berberine", ["berberine"])


# ==================== CRITICAL PAIRS ====================

@dataclass(frozen=True)
class CriticalPair:
    """A curated drug-drug (or drug-supplement) interaction."""
    group_a: DrugGroup
    group_b: DrugGroup
    severity: SeverityLevel
    description: str
    mechanism: str
    recommendation: str


CRITICAL_PAIRS: List[CriticalPair] = [
    CriticalPair(MAOI, SSRI, SeverityLevel.CONTRAINDICATED,
                 "Combining an MAO inhibitor with an SSRI can cause serotonin syndrome, which may be fatal.",
                 "Additive serotonergic activity",
                 "Do not combine. Allow a washout period (at least 14 days; 5 weeks after fluoxetine)."),
    CriticalPair(MAOI, SNRI, SeverityLevel.CONTRAINDICATED,
                 "Combining an MAO inhibitor with an SNRI can cause serotonin syndrome.",
                 "Additive serotonergic activity",
                 "Do not combine. Observe the required washout period."),
    CriticalPair(MAOI, SEROTONERGIC_OPIOIDS, SeverityLevel.CONTRAINDICATED,
                 "MAO inhibitors with serotonergic opioids can cause serotonin syndrome or severe reactions.",
                 "Serotonin reuptake inhibition plus MAO inhibition",
                 "Do not combine. Choose a non-serotonergic analgesic under supervision."),
    CriticalPair(MAOI, FIVE_HTP, SeverityLevel.CONTRAINDICATED,
                 "Serotonin precursors taken with an MAO inhibitor can cause serotonin syndrome.",
                 "Increased serotonin synthesis with blocked breakdown",
                 "Do not combine."),
    CriticalPair(MAOI, ST_JOHNS_WORT, SeverityLevel.MAJOR,
                 "St. John's Wort has MAO-inhibiting and serotonergic activity.",
                 "Additive serotonergic activity",
                 "Avoid the combination."),
    CriticalPair(SSRI, ST_JOHNS_WORT, SeverityLevel.MAJOR,
                 "St. John's Wort with an SSRI increases the risk of serotonin syndrome.",
                 "Additive serotonergic activity",
                 "Avoid the combination unless a clinician is supervising."),
    CriticalPair(SNRI, ST_JOHNS_WORT, SeverityLevel.MAJOR,
                 "St. John's Wort with an SNRI increases the risk of serotonin syndrome.",
                 "Additive serotonergic activity",
                 "Avoid the combination unless a clinician is supervising."),
    CriticalPair(SSRI, FIVE_HTP, SeverityLevel.MAJOR,
                 "Serotonin precursors with an SSRI increase the risk of serotonin syndrome.",
                 "Additive serotonergic activity",
                 "Avoid the combination."),
    CriticalPair(SSRI, SAME, SeverityLevel.MODERATE,
                 "SAMe may add to the serotonergic effect of SSRIs.",
                 "Additive serotonergic activity",
                 "Use only under clinician supervision."),
    CriticalPair(SSRI, SEROTONERGIC_OPIOIDS, SeverityLevel.MAJOR,
                 "SSRIs combined with serotonergic opioids raise the risk of serotonin syndrome and seizures.",
                 "Additive serotonergic activity; CYP2D6 inhibition",
                 "Monitor closely for agitation, tremor, fever and confusion."),
    CriticalPair(SSRI, TRIPTANS, SeverityLevel.MODERATE,
                 "Triptans with SSRIs may rarely cause serotonin syndrome.",
                 "Additive serotonergic activity",
                 "Monitor for serotonin syndrome symptoms."),
    CriticalPair(SSRI, NSAID, SeverityLevel.MODERATE,
                 "SSRIs with NSAIDs increase the risk of gastrointestinal bleeding.",
                 "Impaired platelet serotonin uptake plus mucosal injury",
                 "Consider gastroprotection and watch for bleeding."),
    CriticalPair(VKA, NSAID, SeverityLevel.MAJOR,
                 "NSAIDs increase bleeding risk in patients taking warfarin.",
                 "Antiplatelet effect and gastric mucosal injury",
                 "Avoid regular NSAID use; monitor INR and signs of bleeding."),
    CriticalPair(VKA, ANTIPLATELET, SeverityLevel.MAJOR,
                 "Antiplatelet agents with warfarin substantially increase bleeding risk.",
                 "Combined anticoagulant and antiplatelet effect",
                 "Combine only when prescribed together; monitor for bleeding."),
    CriticalPair(VKA, ST_JOHNS_WORT, SeverityLevel.MAJOR,
                 "St. John's Wort can reduce warfarin levels and its protective effect.",
                 "CYP induction",
                 "Avoid; if started or stopped, INR must be rechecked."),
    CriticalPair(VKA, GINKGO, SeverityLevel.MODERATE,
                 "Ginkgo may increase bleeding risk with warfarin.",
                 "Antiplatelet activity",
                 "Avoid unless a clinician monitors INR."),
    CriticalPair(VKA, GARLIC, SeverityLevel.MODERATE,
                 "Garlic supplements may increase bleeding risk with warfarin.",
                 "Antiplatelet activity",
                 "Avoid concentrated supplements; dietary amounts are usually fine."),
    CriticalPair(VKA, FISH_OIL, SeverityLevel.MODERATE,
                 "High-dose fish oil may increase bleeding risk with warfarin.",
                 "Antiplatelet activity",
                 "Discuss dose with a clinician; monitor INR."),
    CriticalPair(VKA, TURMERIC, SeverityLevel.MODERATE,
                 "Turmeric/curcumin may potentiate warfarin.",
                 "Antiplatelet activity and CYP inhibition",
                 "Avoid supplemental doses unless INR is monitored."),
    CriticalPair(VKA, VITAMIN_K, SeverityLevel.MAJOR,
                 "Vitamin K supplements directly counteract warfarin.",
                 "Pharmacodynamic antagonism",
                 "Do not start or stop vitamin K without your prescriber."),
    CriticalPair(VKA, GINSENG, SeverityLevel.MODERATE,
                 "Ginseng may reduce the effect of warfarin.",
                 "Unclear; possible CYP induction",
                 "Avoid unless INR is monitored."),
    CriticalPair(DOAC, NSAID, SeverityLevel.MAJOR,
                 "NSAIDs increase bleeding risk with direct oral anticoagulants.",
                 "Antiplatelet effect and mucosal injury",
                 "Avoid regular NSAID use."),
    CriticalPair(DOAC, ST_JOHNS_WORT, SeverityLevel.MAJOR,
                 "St. John's Wort can lower anticoagulant levels.",
                 "CYP3A4/P-gp induction",
                 "Avoid the combination."),
    CriticalPair(PDE5, NITRATES, SeverityLevel.CONTRAINDICATED,
                 "PDE5 inhibitors with nitrates can cause a sudden, severe drop in blood pressure.",
                 "Additive cGMP-mediated vasodilation",
                 "Do not combine."),
    CriticalPair(CYP3A4_STATINS, STRONG_CYP3A4_INHIBITORS, SeverityLevel.CONTRAINDICATED,
                 "Strong CYP3A4 inhibitors greatly raise simvastatin/lovastatin levels, risking rhabdomyolysis.",
                 "CYP3A4 inhibition",
                 "Do not combine; the statin must be paused or changed by a prescriber."),
    CriticalPair(STATINS, BERBERINE, SeverityLevel.MINOR,
                 "Berberine may add to statin lipid-lowering and liver effects.",
                 "Additive effect",
                 "Mention supplement use at lipid and liver monitoring visits."),
    CriticalPair(METHOTREXATE, TRIMETHOPRIM, SeverityLevel.MAJOR,
                 "Trimethoprim increases methotrexate toxicity (bone marrow suppression).",
                 "Additive antifolate effect; reduced renal clearance",
                 "Avoid the combination or monitor blood counts closely."),
    CriticalPair(LITHIUM, NSAID, SeverityLevel.MAJOR,
                 "NSAIDs can raise lithium levels to toxic concentrations.",
                 "Reduced renal lithium clearance",
                 "Avoid or monitor lithium levels closely."),
    CriticalPair(LITHIUM, ACE_ARB, SeverityLevel.MAJOR,
                 "ACE inhibitors and ARBs can raise lithium levels.",
                 "Reduced renal lithium clearance",
                 "Monitor lithium levels when starting or changing dose."),
    CriticalPair(ACE_ARB, POTASSIUM_SPARING, SeverityLevel.MODERATE,
                 "This combination can raise potassium to dangerous levels.",
                 "Additive potassium retention",
                 "Monitor potassium and kidney function."),
    CriticalPair(BENZODIAZEPINES, OPIOIDS, SeverityLevel.MAJOR,
                 "Benzodiazepines with opioids can cause profound sedation, respiratory depression and death.",
                 "Additive CNS depression",
                 "Combine only when no alternative exists, at the lowest doses, with monitoring."),
    CriticalPair(SEDATIVE_HYPNOTICS, KAVA, SeverityLevel.MODERATE,
                 "Kava adds to the sedative effect of sleep and anxiety medications.",
                 "Additive CNS depression",
                 "Avoid the combination."),
    CriticalPair(SEDATIVE_HYPNOTICS, VALERIAN, SeverityLevel.MODERATE,
                 "Valerian adds to the sedative effect of sleep and anxiety medications.",
                 "Additive CNS depression",
                 "Avoid the combination."),
    CriticalPair(CONTRACEPTIVES, ST_JOHNS_WORT, SeverityLevel.MAJOR,
                 "St. John's Wort can make hormonal contraceptives less effective.",
                 "CYP3A4 induction",
                 "Use additional contraception or avoid the combination."),
    CriticalPair(CALCINEURIN_INHIBITORS, ST_JOHNS_WORT, SeverityLevel.MAJOR,
                 "St. John's Wort lowers cyclosporine/tacrolimus levels and can cause transplant rejection.",
                 "CYP3A4/P-gp induction",
                 "Do not combine."),
    CriticalPair(DIGOXIN, ST_JOHNS_WORT, SeverityLevel.MODERATE,
                 "St. John's Wort can lower digoxin levels.",
                 "P-gp induction",
                 "Avoid or monitor digoxin levels."),
    CriticalPair(LEVOTHYROXINE, _group("calcium/iron", ["calcium", "iron", "ferrous sulfate"]), SeverityLevel.MINOR,
                 "Calcium and iron supplements reduce levothyroxine absorption.",
                 "Chelation in the gut",
                 "Separate doses by at least 4 hours."),
]


def find_critical_pair(
    terms_a: Sequence[str], classes_a: Sequence[str],
    terms_b: Sequence[str], classes_b: Sequence[str],
) -> Optional[CriticalPair]:
    """Return the most severe curated pair matching A and B in either order."""
    best: Optional[CriticalPair] = None
    for pair in CRITICAL_PAIRS:
        forward = pair.group_a.matches(terms_a, classes_a) and pair.group_b.matches(terms_b, classes_b)
        reverse = pair.group_a.matches(terms_b, classes_b) and pair.group_b.matches(terms_a, classes_a)
        if forward or reverse:
            if best is None or SEVERITY_WEIGHTS[pair.severity] > SEVERITY_WEIGHTS[best.severity]:
                best = pair
    return best


# ==================== FOOD RULES ====================

@dataclass(frozen=True)
class FoodRule:
    group: DrugGroup
    food: str
    severity: SeverityLevel
    description: str
    recommendation: str


FOOD_RULES: List[FoodRule] = [
    FoodRule(CYP3A4_STATINS, "grapefruit", SeverityLevel.MAJOR,
             "Grapefruit greatly increases simvastatin/lovastatin levels (muscle damage risk).",
             "Avoid grapefruit and grapefruit juice."),
    FoodRule(_group("atorvastatin", ["atorvastatin"]), "grapefruit", SeverityLevel.MODERATE,
             "Large amounts of grapefruit juice raise atorvastatin levels.",
             "Limit grapefruit juice."),
    FoodRule(CALCIUM_CHANNEL_BLOCKERS_3A4, "grapefruit", SeverityLevel.MODERATE,
             "Grapefruit raises levels of some calcium channel blockers, lowering blood pressure further.",
             "Avoid grapefruit juice."),
    FoodRule(CALCINEURIN_INHIBITORS, "grapefruit", SeverityLevel.MAJOR,
             "Grapefruit raises cyclosporine/tacrolimus levels unpredictably.",
             "Avoid grapefruit."),
    FoodRule(MAOI, "tyramine-rich foods", SeverityLevel.MAJOR,
             "Aged cheese, cured meats and other tyramine-rich foods can trigger a hypertensive crisis.",
             "Follow the tyramine-restricted diet you were given."),
    FoodRule(VKA, "vitamin K-rich foods", SeverityLevel.MODERATE,
             "Sudden changes in leafy greens and other vitamin K sources alter warfarin's effect.",
             "Keep vitamin K intake consistent rather than avoiding it."),
    FoodRule(NITROIMIDAZOLES, "alcohol", SeverityLevel.MAJOR,
             "Alcohol with metronidazole/tinidazole can cause severe nausea, flushing and palpitations.",
             "Avoid alcohol during treatment and for 3 days after."),
    FoodRule(BENZODIAZEPINES, "alcohol", SeverityLevel.MAJOR,
             "Alcohol adds to benzodiazepine sedation and breathing suppression.",
             "Avoid alcohol."),
    FoodRule(OPIOIDS, "alcohol", SeverityLevel.MAJOR,
             "Alcohol with opioids can cause dangerous sedation and breathing suppression.",
             "Avoid alcohol."),
    FoodRule(METFORMIN, "alcohol", SeverityLevel.MODERATE,
             "Heavy alcohol use with metformin raises the risk of lactic acidosis and low blood sugar.",
             "Limit alcohol."),
    FoodRule(ACETAMINOPHEN, "alcohol", SeverityLevel.MODERATE,
             "Regular alcohol use with acetaminophen increases the risk of liver damage.",
             "Limit alcohol and do not exceed the labeled dose."),
    FoodRule(TETRACYCLINES, "dairy and calcium", SeverityLevel.MINOR,
             "Dairy products and calcium reduce absorption of tetracycline antibiotics.",
             "Take 2 hours before or after dairy."),
    FoodRule(FLUOROQUINOLONES, "dairy and calcium", SeverityLevel.MINOR,
             "Calcium-rich foods reduce fluoroquinolone absorption.",
             "Take 2 hours before or 6 hours after calcium-rich foods."),
    FoodRule(LEVOTHYROXINE, "coffee and soy", SeverityLevel.MINOR,
             "Coffee, soy and high-fibre meals reduce levothyroxine absorption.",
             "Take on an empty stomach, 30-60 minutes before breakfast."),
]


# ==================== AGE RULES ====================

PEDIATRIC_MAX_AGE = 17  # pediatric band: age < 18
GERIATRIC_MIN_AGE = 65


@dataclass(frozen=True)
class AgeRule:
    group: DrugGroup
    band: str  # pediatric | geriatric
    severity: SeverityLevel
    description: str
    recommendation: str
    min_age: int = 0
    max_age: int = 200

    def applies(self, age: int) -> bool:
        if self.band == "pediatric" and age > PEDIATRIC_MAX_AGE:
            return False
        if self.band == "geriatric" and age < GERIATRIC_MIN_AGE:
            return False
        return self.min_age <= age <= self.max_age


_ANTIPSYCHOTICS = _group("antipsychotic", [
    "quetiapine", "olanzapine", "risperidone", "haloperidol", "aripiprazole", "ziprasidone", "clozapine",
], "antipsychotic")
_FIRST_GEN_ANTIHISTAMINES = _group("first-generation antihistamine", [
    "diphenhydramine", "hydroxyzine", "chlorpheniramine", "promethazine", "doxylamine", "meclizine",
])
_TRICYCLICS = _group("tricyclic antidepressant", [
    "amitriptyline", "imipramine", "doxepin", "nortriptyline", "clomipramine",
], "tricyclic")
_LONG_ACTING_SULFONYLUREAS = _group("long-acting sulfonylurea", ["glyburide", "glibenclamide", "glimepiride"])
_MUSCLE_RELAXANTS = _group("muscle relaxant", [
    "cyclobenzaprine", "methocarbamol", "carisoprodol", "metaxalone", "orphenadrine",
])
_Z_DRUGS = _group("Z-drug hypnotic", ["zolpidem", "eszopiclone", "zaleplon"])
_ANTIDEPRESSANTS = _group("antidepressant", [
    "sertraline", "fluoxetine", "paroxetine", "citalopram", "escitalopram", "venlafaxine", "duloxetine",
    "bupropion", "mirtazapine", "amitriptyline",
], "serotonin reuptake inhibitor", "norepinephrine reuptake inhibitor")

AGE_RULES: List[AgeRule] = [
    AgeRule(_group("salicylate", ["aspirin", "bismuth subsalicylate", "salicylate"]), "pediatric",
            SeverityLevel.MAJOR,
            "Salicylates in children and teenagers are linked to Reye's syndrome.",
            "Do not give to children or teenagers recovering from viral illness without a doctor's advice."),
    AgeRule(_group("codeine/tramadol", ["codeine", "tramadol"]), "pediatric", SeverityLevel.CONTRAINDICATED,
            "Codeine and tramadol can cause life-threatening breathing problems in children under 12.",
            "Do not use in children under 12.", max_age=11),
    AgeRule(_group("codeine/tramadol", ["codeine", "tramadol"]), "pediatric", SeverityLevel.MAJOR,
            "Codeine and tramadol carry breathing risks in adolescents, especially after surgery.",
            "Use only if prescribed with a clear plan; avoid after tonsillectomy.", min_age=12),
    AgeRule(_group("promethazine", ["promethazine"]), "pediatric", SeverityLevel.CONTRAINDICATED,
            "Promethazine can cause fatal respiratory depression in children under 2.",
            "Do not use in children under 2.", max_age=1),
    AgeRule(TETRACYCLINES, "pediatric", SeverityLevel.MODERATE,
            "Tetracyclines can permanently discolour developing teeth in children under 8.",
            "Use only when no suitable alternative exists.", max_age=7),
    AgeRule(FLUOROQUINOLONES, "pediatric", SeverityLevel.MODERATE,
            "Fluoroquinolones are associated with joint and tendon problems in children.",
            "Reserve for infections without alternatives."),
    AgeRule(_ANTIDEPRESSANTS, "pediatric", SeverityLevel.MAJOR,
            "Antidepressants carry a boxed warning for suicidal thoughts in young people.",
            "Close monitoring for mood changes is required, especially early in treatment."),
    AgeRule(BENZODIAZEPINES, "geriatric", SeverityLevel.MAJOR,
            "Benzodiazepines in older adults increase falls, fractures and cognitive impairment.",
            "Avoid where possible (Beers Criteria); review need with the prescriber."),
    AgeRule(_Z_DRUGS, "geriatric", SeverityLevel.MODERATE,
            "Z-drug sleep medicines increase falls and confusion in older adults.",
            "Use the lowest dose for the shortest time."),
    AgeRule(_FIRST_GEN_ANTIHISTAMINES, "geriatric", SeverityLevel.MODERATE,
            "First-generation antihistamines are strongly anticholinergic (confusion, constipation, urinary retention).",
            "Prefer non-sedating alternatives."),
    AgeRule(_TRICYCLICS, "geriatric", SeverityLevel.MAJOR,
            "Tricyclic antidepressants are highly anticholinergic and can cause falls and heart rhythm problems.",
            "Avoid where possible (Beers Criteria)."),
    AgeRule(_LONG_ACTING_SULFONYLUREAS, "geriatric", SeverityLevel.MAJOR,
            "Long-acting sulfonylureas cause prolonged low blood sugar in older adults.",
            "Monitor blood glucose; discuss shorter-acting options."),
    AgeRule(NSAID, "geriatric", SeverityLevel.MODERATE,
            "NSAIDs in older adults increase the risk of stomach bleeding and kidney injury.",
            "Avoid chronic use unless protected and monitored."),
    AgeRule(_MUSCLE_RELAXANTS, "geriatric", SeverityLevel.MODERATE,
            "Muscle relaxants are poorly tolerated by older adults (sedation, falls).",
            "Avoid where possible."),
    AgeRule(DIGOXIN, "geriatric", SeverityLevel.MODERATE,
            "Older adults are more prone to digoxin toxicity.",
            "Keep doses low and monitor levels and kidney function."),
    AgeRule(_ANTIPSYCHOTICS, "geriatric", SeverityLevel.MAJOR,
            "Antipsychotics increase stroke and mortality risk in older adults with dementia.",
            "Use only when clearly needed, with regular review."),
]


# ==================== CONDITION RULES ====================

@dataclass(frozen=True)
class ConditionRule:
    condition_keywords: Tuple[str, ...]
    group: DrugGroup
    severity: SeverityLevel
    description: str
    recommendation: str

    def matches_condition(self, condition: str) -> bool:
        condition = condition.lower()
        return any(k in condition for k in self.condition_keywords)


_NONSELECTIVE_BETA_BLOCKERS = _group("non-selective beta blocker", [
    "propranolol", "nadolol", "timolol", "carvedilol", "sotalol", "labetalol",
])
_DECONGESTANTS = _group("oral decongestant", ["pseudoephedrine", "phenylephrine"])
_THIAZOLIDINEDIONES = _group("thiazolidinedione", ["pioglitazone", "rosiglitazone"], "thiazolidinedione")
_CORTICOSTEROIDS = _group("corticosteroid", [
    "prednisone", "prednisolone", "methylprednisolone", "dexamethasone", "hydrocortisone",
], "corticosteroid")
_ANTICOAGULANTS = _group("anticoagulant", [
    "warfarin", "apixaban", "rivaroxaban", "dabigatran", "edoxaban", "heparin", "enoxaparin",
], "anticoagulant", "vitamin k antagonist", "factor xa inhibitor")
_MACROLIDES = _group("macrolide", ["azithromycin", "clarithromycin", "erythromycin"], "macrolide")
_ESTROGENS = _group("estrogen-containing", [
    "ethinyl estradiol", "estradiol", "conjugated estrogens",
], "estrogen")

_KIDNEY = ("kidney", "renal", "ckd", "nephropathy")
_LIVER = ("liver", "hepatic", "cirrhosis", "hepatitis")
_ULCER = ("ulcer", "gi bleed", "gastrointestinal bleed", "stomach bleed")
_HEART_FAILURE = ("heart failure", "chf", "cardiac failure")
_AIRWAY = ("asthma", "copd", "chronic obstructive", "bronchospasm")
_SEIZURE = ("seizure", "epilepsy", "convulsion")
_CLOTTING = ("blood clot", "thrombosis", "dvt", "pulmonary embolism", "stroke", "thromboembolism")
_BLEEDING = ("bleeding disorder", "hemophilia", "haemophilia", "von willebrand", "thrombocytopenia")

CONDITION_RULES: List[ConditionRule] = [
    ConditionRule(_KIDNEY, NSAID, SeverityLevel.MAJOR,
                  "NSAIDs can worsen kidney function in kidney disease.",
                  "Avoid NSAIDs; ask about kidney-safe pain relief."),
    ConditionRule(_ULCER, NSAID, SeverityLevel.MAJOR,
                  "NSAIDs can cause recurrent ulcers and bleeding.",
                  "Avoid NSAIDs unless a clinician prescribes gastroprotection."),
    ConditionRule(_HEART_FAILURE, NSAID, SeverityLevel.MAJOR,
                  "NSAIDs cause fluid retention and can worsen heart failure.",
                  "Avoid NSAIDs."),
    ConditionRule(("hypertension", "high blood pressure"), NSAID, SeverityLevel.MODERATE,
                  "NSAIDs can raise blood pressure and blunt blood-pressure medicines.",
                  "Monitor blood pressure."),
    ConditionRule(_AIRWAY, _NONSELECTIVE_BETA_BLOCKERS, SeverityLevel.MAJOR,
                  "Non-selective beta blockers can trigger bronchospasm.",
                  "Discuss a cardioselective alternative with the prescriber."),
    ConditionRule(("hypertension", "high blood pressure"), _DECONGESTANTS, SeverityLevel.MODERATE,
                  "Oral decongestants raise blood pressure.",
                  "Prefer saline or steroid nasal sprays; monitor blood pressure."),
    ConditionRule(_KIDNEY, METFORMIN, SeverityLevel.MAJOR,
                  "Metformin accumulates in reduced kidney function (lactic acidosis risk).",
                  "Dose must follow kidney function (eGFR); contraindicated below 30."),
    ConditionRule(_LIVER, METFORMIN, SeverityLevel.MODERATE,
                  "Liver disease increases the risk of lactic acidosis with metformin.",
                  "Use with caution and monitoring."),
    ConditionRule(_SEIZURE, _group("bupropion", ["bupropion"]), SeverityLevel.CONTRAINDICATED,
                  "Bupropion lowers the seizure threshold.",
                  "Do not use with a seizure disorder."),
    ConditionRule(("bulimia", "anorexia", "eating disorder"), _group("bupropion", ["bupropion"]),
                  SeverityLevel.CONTRAINDICATED,
                  "Bupropion carries a high seizure risk in eating disorders.",
                  "Do not use."),
    ConditionRule(_SEIZURE, _group("tramadol", ["tramadol"]), SeverityLevel.MAJOR,
                  "Tramadol lowers the seizure threshold.",
                  "Avoid in seizure disorders."),
    ConditionRule(_HEART_FAILURE, _THIAZOLIDINEDIONES, SeverityLevel.MAJOR,
                  "Thiazolidinediones cause fluid retention and can precipitate heart failure.",
                  "Avoid in symptomatic heart failure."),
    ConditionRule(_CLOTTING, _ESTROGENS, SeverityLevel.CONTRAINDICATED,
                  "Estrogen-containing medicines raise the risk of blood clots.",
                  "Do not use with a history of thrombosis or stroke."),
    ConditionRule(("diabetes", "diabetic"), _CORTICOSTEROIDS, SeverityLevel.MODERATE,
                  "Corticosteroids raise blood sugar.",
                  "Monitor glucose more often during treatment."),
    ConditionRule(_BLEEDING + _ULCER, _ANTICOAGULANTS, SeverityLevel.MAJOR,
                  "Anticoagulants greatly increase bleeding risk with this condition.",
                  "Requires specialist supervision and close monitoring."),
    ConditionRule(("glaucoma", "enlarged prostate", "bph", "urinary retention"), _FIRST_GEN_ANTIHISTAMINES,
                  SeverityLevel.MODERATE,
                  "Anticholinergic antihistamines can worsen glaucoma and urinary retention.",
                  "Prefer non-sedating antihistamines."),
    ConditionRule(("coronary", "angina", "arrhythmia", "heart disease"), LEVOTHYROXINE, SeverityLevel.MODERATE,
                  "Thyroid hormone increases cardiac workload.",
                  "Start low and titrate slowly under supervision."),
    ConditionRule(_LIVER, STATINS, SeverityLevel.MAJOR,
                  "Statins are contraindicated in active liver disease.",
                  "Liver tests are needed before and during treatment."),
    ConditionRule(("bipolar", "mania"), _ANTIDEPRESSANTS, SeverityLevel.MODERATE,
                  "Antidepressants can trigger mania in bipolar disorder.",
                  "Use only alongside a mood stabilizer under supervision."),
    ConditionRule(("myasthenia",), FLUOROQUINOLONES, SeverityLevel.MAJOR,
                  "Fluoroquinolones can worsen myasthenia gravis weakness.",
                  "Avoid."),
    ConditionRule(("long qt", "qt prolongation"), _MACROLIDES, SeverityLevel.MAJOR,
                  "Macrolide antibiotics prolong the QT interval.",
                  "Avoid or monitor ECG."),
    ConditionRule(_KIDNEY, LITHIUM, SeverityLevel.MAJOR,
                  "Reduced kidney function causes lithium to accumulate.",
                  "Requires dose adjustment and frequent level checks."),
]


# ==================== PREGNANCY ====================

PREGNANCY_SEVERITY: Dict[str, SeverityLevel] = {
    "C": SeverityLevel.MODERATE,
    "D": SeverityLevel.MAJOR,
    "X": SeverityLevel.CONTRAINDICATED,
}

PREGNANCY_CATEGORIES: Dict[str, str] = {
    # Category X
    "warfarin": "X", "isotretinoin": "X", "atorvastatin": "X", "simvastatin": "X", "lovastatin": "X",
    "rosuvastatin": "X", "pravastatin": "X", "methotrexate": "X", "misoprostol": "X", "finasteride": "X",
    "leflunomide": "X", "ribavirin": "X", "thalidomide": "X", "testosterone": "X", "estradiol": "X",
    # Category D
    "lisinopril": "D", "enalapril": "D", "ramipril": "D", "losartan": "D", "valsartan": "D",
    "phenytoin": "D", "valproate": "D", "valproic acid": "D", "divalproex": "D", "carbamazepine": "D",
    "lithium": "D", "tetracycline": "D", "doxycycline": "D", "minocycline": "D", "paroxetine": "D",
    "alprazolam": "D", "lorazepam": "D", "diazepam": "D", "clonazepam": "D", "amiodarone": "D",
    "tamoxifen": "D", "mycophenolate": "D", "topiramate": "D",
    # Category C
    "sertraline": "C", "fluoxetine": "C", "citalopram": "C", "escitalopram": "C", "venlafaxine": "C",
    "duloxetine": "C", "bupropion": "C", "tramadol": "C", "gabapentin": "C", "metoprolol": "C",
    "amlodipine": "C", "prednisone": "C", "ciprofloxacin": "C", "levofloxacin": "C", "fluconazole": "C",
    "sumatriptan": "C", "omeprazole": "C", "quetiapine": "C", "levetiracetam": "C", "zolpidem": "C",
    "tacrolimus": "C", "hydrocodone": "C", "oxycodone": "C",
}

_PREGNANCY_CATEGORY_TEXT = re.compile(r"pregnancy\s+category\s*[:\-]?\s*([ABCDX])\b", re.IGNORECASE)


def pregnancy_category_for(terms: Sequence[str]) -> Optional[str]:
    for term in terms:
        for name, category in PREGNANCY_CATEGORIES.items():
            if _contains_word(term, name):
                return category
    return None


def extract_pregnancy_category(text: Optional[str]) -> Optional[str]:
    """Pull a legacy FDA letter category out of label text."""
    if not text:
        return None
    match = _PREGNANCY_CATEGORY_TEXT.search(text)
    return match.group(1).upper() if match else None


# ==================== ALLERGEN CLASSES ====================

ALLERGEN_CLASSES: Dict[str, DrugGroup] = {
    "penicillin": _group("penicillin", [
        "penicillin", "amoxicillin", "ampicillin", "piperacillin", "nafcillin", "oxacillin", "dicloxacillin",
    ], "penicillin-class"),
    "cephalosporin": _group("cephalosporin", [
        "cephalexin", "cefuroxime", "ceftriaxone", "cefdinir", "cefazolin", "cefpodoxime",
    ], "cephalosporin"),
    "sulfa": _group("sulfonamide", ["sulfamethoxazole", "sulfasalazine", "sulfadiazine"], "sulfonamide"),
    "sulfonamide": _group("sulfonamide", ["sulfamethoxazole", "sulfasalazine", "sulfadiazine"], "sulfonamide"),
    "nsaid": NSAID,
    "aspirin": NSAID,
    "opioid": OPIOIDS,
    "opiate": OPIOIDS,
    "codeine": _group("codeine-related opioid", ["codeine", "morphine", "hydrocodone"]),
    "statin": STATINS,
    "macrolide": _MACROLIDES,
    "quinolone": FLUOROQUINOLONES,
    "fluoroquinolone": FLUOROQUINOLONES,
    "tetracycline": TETRACYCLINES,
}


def allergen_class_for(term: str) -> Optional[DrugGroup]:
    term = term.lower()
    for key, group in ALLERGEN_CLASSES.items():
        if key in term:
            return group
    return None


# ==================== OFFLINE FORMULARY ====================

@dataclass(frozen=True)
class FormularyEntry:
    generic_name: str
    brand_names: Tuple[str, ...] = ()
    pharm_classes: Tuple[str, ...] = ()
    approved: bool = True
    active_ingredients: Tuple[str, ...] = ()
    pregnancy_category: Optional[str] = None


def _entry(generic, brands=(), classes=(), approved=True, ingredients=(), pregnancy=None) -> FormularyEntry:
    return FormularyEntry(
        generic_name=generic,
        brand_names=tuple(brands),
        pharm_classes=tuple(classes),
        approved=approved,
        active_ingredients=tuple(ingredients) or (generic,),
        pregnancy_category=pregnancy,
    )


FORMULARY: List[FormularyEntry] = [
    _entry("warfarin", ["Coumadin", "Jantoven"], ["Vitamin K Antagonist [EPC]"], ingredients=["warfarin sodium"], pregnancy="X"),
    _entry("apixaban", ["Eliquis"], ["Factor Xa Inhibitor [EPC]"]),
    _entry("clopidogrel", ["Plavix"], ["P2Y12 Platelet Inhibitor [EPC]"]),
    _entry("aspirin", ["Bayer", "Ecotrin"], ["Platelet Aggregation Inhibitor [EPC]", "Nonsteroidal Anti-inflammatory Drug [EPC]"]),
    _entry("sertraline", ["Zoloft"], ["Serotonin Reuptake Inhibitor [EPC]"], pregnancy="C"),
    _entry("fluoxetine", ["Prozac"], ["Serotonin Reuptake Inhibitor [EPC]"], pregnancy="C"),
    _entry("escitalopram", ["Lexapro"], ["Serotonin Reuptake Inhibitor [EPC]"], pregnancy="C"),
    _entry("citalopram", ["Celexa"], ["Serotonin Reuptake Inhibitor [EPC]"], pregnancy="C"),
    _entry("paroxetine", ["Paxil"], ["Serotonin Reuptake Inhibitor [EPC]"], pregnancy="D"),
    _entry("venlafaxine", ["Effexor"], ["Serotonin and Norepinephrine Reuptake Inhibitor [EPC]"], pregnancy="C"),
    _entry("bupropion", ["Wellbutrin", "Zyban"], ["Aminoketone [EPC]"], pregnancy="C"),
    _entry("phenelzine", ["Nardil"], ["Monoamine Oxidase Inhibitor [EPC]"]),
    _entry("tranylcypromine", ["Parnate"], ["Monoamine Oxidase Inhibitor [EPC]"]),
    _entry("quetiapine", ["Seroquel"], ["Atypical Antipsychotic [EPC]"], pregnancy="C"),
    _entry("lithium carbonate", ["Lithobid"], ["Mood Stabilizer [EPC]"], ingredients=["lithium"], pregnancy="D"),
    _entry("metformin", ["Glucophage"], ["Biguanide [EPC]"], ingredients=["metformin hydrochloride"]),
    _entry("insulin glargine", ["Lantus", "Basaglar"], ["Insulin Analog [EPC]"]),
    _entry("glipizide", ["Glucotrol"], ["Sulfonylurea [EPC]"]),
    _entry("lisinopril", ["Prinivil", "Zestril"], ["Angiotensin Converting Enzyme Inhibitor [EPC]"], pregnancy="D"),
    _entry("losartan", ["Cozaar"], ["Angiotensin 2 Receptor Blocker [EPC]"], pregnancy="D"),
    _entry("amlodipine", ["Norvasc"], ["Calcium Channel Blocker [EPC]"], pregnancy="C"),
    _entry("metoprolol", ["Lopressor", "Toprol XL"], ["beta-Adrenergic Blocker [EPC]"], pregnancy="C"),
    _entry("atorvastatin", ["Lipitor"], ["HMG-CoA Reductase Inhibitor [EPC]"], pregnancy="X"),
    _entry("simvastatin", ["Zocor"], ["HMG-CoA Reductase Inhibitor [EPC]"], pregnancy="X"),
    _entry("nitroglycerin", ["Nitrostat"], ["Nitrate Vasodilator [EPC]"]),
    _entry("digoxin", ["Lanoxin"], ["Cardiac Glycoside [EPC]"]),
    _entry("levothyroxine", ["Synthroid", "Levoxyl", "Unithroid"], ["L-Thyroxine [EPC]"], ingredients=["levothyroxine sodium"]),
    _entry("prednisone", ["Deltasone", "Rayos"], ["Corticosteroid [EPC]"], pregnancy="C"),
    _entry("levetiracetam", ["Keppra"], ["Anti-epileptic Agent [EPC]"], pregnancy="C"),
    _entry("phenytoin", ["Dilantin"], ["Anti-epileptic Agent [EPC]"], pregnancy="D"),
    _entry("gabapentin", ["Neurontin"], ["Anti-epileptic Agent [EPC]"], pregnancy="C"),
    _entry("methotrexate", ["Trexall", "Otrexup"], ["Folate Analog Metabolic Inhibitor [EPC]"], pregnancy="X"),
    _entry("tacrolimus", ["Prograf"], ["Calcineurin Inhibitor Immunosuppressant [EPC]"], pregnancy="C"),
    _entry("amoxicillin", ["Amoxil"], ["Penicillin-class Antibacterial [EPC]"]),
    _entry("ciprofloxacin", ["Cipro"], ["Fluoroquinolone Antibacterial [EPC]"], pregnancy="C"),
    _entry("doxycycline", ["Vibramycin", "Doryx"], ["Tetracycline-class Antibacterial [EPC]"], pregnancy="D"),
    _entry("clarithromycin", ["Biaxin"], ["Macrolide Antimicrobial [EPC]"]),
    _entry("ibuprofen", ["Advil", "Motrin"], ["Nonsteroidal Anti-inflammatory Drug [EPC]"]),
    _entry("naproxen", ["Aleve", "Naprosyn"], ["Nonsteroidal Anti-inflammatory Drug [EPC]"]),
    _entry("acetaminophen", ["Tylenol"], ["Analgesic"]),
    _entry("omeprazole", ["Prilosec"], ["Proton Pump Inhibitor [EPC]"], pregnancy="C"),
    _entry("tramadol", ["Ultram"], ["Opioid Agonist [EPC]"], pregnancy="C"),
    _entry("oxycodone", ["OxyContin", "Roxicodone"], ["Opioid Agonist [EPC]"], pregnancy="C"),
    _entry("alprazolam", ["Xanax"], ["Benzodiazepine [EPC]"], pregnancy="D"),
    _entry("zolpidem", ["Ambien"], ["gamma-Aminobutyric Acid-ergic Agonist [EPC]"], pregnancy="C"),
    _entry("diphenhydramine", ["Benadryl"], ["Histamine-1 Receptor Antagonist [EPC]"]),
    _entry("sildenafil", ["Viagra", "Revatio"], ["Phosphodiesterase 5 Inhibitor [EPC]"]),
    _entry("isotretinoin", ["Accutane", "Claravis"], ["Retinoid [EPC]"], pregnancy="X"),
    _entry("melatonin", [], ["Dietary Supplement"], approved=False),
    _entry("st johns wort", ["Hypericum"], ["Herbal Supplement"], approved=False, ingredients=["hypericum perforatum"]),
    _entry("fish oil", ["Lovaza"], ["Dietary Supplement"], approved=False, ingredients=["omega-3 acid ethyl esters"]),
]

_STRENGTH_TOKENS = re.compile(
    r"\b\d+(?:\.\d+)?\s*(?:mg|mcg|g|ml|iu|units?|%)?\b|\b(?:tablets?|capsules?|oral|er|xr|sr|xl|dr|hcl)\b",
    re.IGNORECASE,
)


def strip_strength(name: str) -> str:
    """'Warfarin 5 mg tablet' -> 'warfarin'."""
    stripped = _STRENGTH_TOKENS.sub(" ", name.lower())
    return re.sub(r"\s+", " ", stripped.replace("(", " ").replace(")", " ")).strip(" .-")


def formulary_lookup(name: str) -> Optional[FormularyEntry]:
    """Find a formulary entry by generic name, brand name or ingredient."""
    candidates = {name.strip().lower(), strip_strength(name)}
    candidates.discard("")
    for entry in FORMULARY:
        keys = {entry.generic_name.lower()}
        keys.update(b.lower() for b in entry.brand_names)
        keys.update(i.lower() for i in entry.active_ingredients)
        if candidates & keys:
            return entry
    return None
